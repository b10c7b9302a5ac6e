"""Wire configured AWS and HTTP clients into the core components."""

from __future__ import annotations

from dataclasses import dataclass

import httpx

from oncallbot.aws import make_client
from oncallbot.config.schema import Config
from oncallbot.providers.pagerduty import PagerDutyClient
from oncallbot.providers.slack import SlackClient
from oncallbot.rotation.orchestrator import Orchestrator, RunReport
from oncallbot.rotation.roster import RosterSync
from oncallbot.scheduler.eventbridge import EventBridgeScheduler
from oncallbot.scheduler.reconciler import TriggerReconciler
from oncallbot.security.encryption import Encryptor
from oncallbot.security.secrets import SecretsClient
from oncallbot.tasks.store import InstallationStore, TaskStore


@dataclass
class Runtime:
    config: Config
    secrets: SecretsClient
    tasks: TaskStore
    installations: InstallationStore
    scheduler: EventBridgeScheduler
    reconciler: TriggerReconciler

    @classmethod
    def from_config(cls, config: Config) -> "Runtime":
        timeout = config.rotation.http_timeout_s
        secrets = SecretsClient(make_client("secretsmanager", config.aws, timeout), config.secret_name)
        encryptor = Encryptor(secrets.get().encryption_key)
        dynamodb = make_client("dynamodb", config.aws, timeout)
        scheduler = EventBridgeScheduler(
            make_client("scheduler", config.aws, timeout),
            name_prefix=config.trigger_prefix,
            target_arn=config.scheduler.target_arn,
            role_arn=config.scheduler.role_arn,
            group_name=config.scheduler.group_name,
        )
        return cls(
            config=config,
            secrets=secrets,
            tasks=TaskStore(dynamodb, config.schedules_table, encryptor),
            installations=InstallationStore(dynamodb, config.installations_table, encryptor),
            scheduler=scheduler,
            reconciler=TriggerReconciler(
                scheduler, config.trigger_prefix, grace_seconds=config.scheduler.grace_seconds
            ),
        )

    def http_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.config.rotation.http_timeout_s)

    def roster(self, http: httpx.AsyncClient) -> RosterSync:
        cfg = self.config
        return RosterSync(
            paging_factory=lambda token: PagerDutyClient(
                token,
                http,
                api_base=cfg.pagerduty.api_base,
                window_minutes=cfg.pagerduty.window_minutes,
            ),
            messaging_factory=lambda token: SlackClient(token, http, api_base=cfg.slack.api_base),
            config=cfg.rotation,
        )

    def orchestrator(self, http: httpx.AsyncClient) -> Orchestrator:
        return Orchestrator(
            self.tasks,
            self.installations,
            self.roster(http),
            self.reconciler,
            config=self.config.rotation,
        )

    def signing_secret(self) -> str:
        return self.config.slack.signing_secret or self.secrets.get().slack_signing_secret


async def run_once(config: Config) -> RunReport:
    """Run one orchestrator pass with freshly built clients."""
    runtime = Runtime.from_config(config)
    async with runtime.http_client() as http:
        return await runtime.orchestrator(http).run()
