from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

from site_delivery.build import (
    BuildRunner,
    ChangeRequestValidator,
    CodeBuildRunner,
    NullDeployer,
    S3SiteDeployer,
    SiteDeployer,
    make_stage_actions,
)
from site_delivery.core import ILogger, Settings, get_logger
from site_delivery.feedback import (
    BuildResultFeedbackService,
    ChangeRequestSink,
    CodeCommitCommentSink,
    GitHubCommentSink,
)
from site_delivery.notify import NotificationChannel, Transport
from site_delivery.pipeline import (
    ArtifactStore,
    LifecycleEvent,
    LocalArtifactStore,
    PipelineStateMachine,
    RunJournal,
    RunStore,
    S3ArtifactStore,
    compose_emitters,
)
from site_delivery.routing import (
    NOTIFICATIONS,
    PR_FEEDBACK,
    EventRouter,
    RoutedEvent,
    RuleSet,
    default_rules,
    load_rules,
)
from site_delivery.source import ProviderKind, SourceProvider, make_source_provider


@dataclass(slots=True)
class ControlPlane:
    """
    Every component of the delivery system, wired from one Settings object.
    """

    settings: Settings
    provider: SourceProvider
    machine: PipelineStateMachine
    router: EventRouter
    channel: NotificationChannel
    feedback: BuildResultFeedbackService
    validator: ChangeRequestValidator
    store: RunStore


def _default_sink(settings: Settings, provider: SourceProvider) -> ChangeRequestSink:
    if provider.kind is ProviderKind.GITHUB:
        token = settings.github_token.get_secret_value() if settings.github_token else ""
        return GitHubCommentSink(token=token, api_url=settings.github_api_url)
    return CodeCommitCommentSink(region=settings.region)


def _default_artifacts(settings: Settings) -> ArtifactStore:
    if settings.artifact_bucket:
        return S3ArtifactStore(settings.artifact_bucket, region=settings.region)
    return LocalArtifactStore(Path(settings.data_root) / "artifacts")


def _default_deployer(settings: Settings) -> SiteDeployer:
    if settings.site_bucket:
        return S3SiteDeployer(
            site_bucket=settings.site_bucket,
            distribution_id=settings.distribution_id,
            region=settings.region,
        )
    return NullDeployer()


def _rules(settings: Settings) -> RuleSet:
    if settings.rules_file is not None:
        return load_rules(settings.rules_file)
    return default_rules(
        pipeline_name=settings.pipeline_name,
        validation_project=settings.validation_project,
    )


def build_control_plane(
    settings: Settings,
    *,
    provider: SourceProvider | None = None,
    runner: BuildRunner | None = None,
    deployer: SiteDeployer | None = None,
    artifacts: ArtifactStore | None = None,
    sink: ChangeRequestSink | None = None,
    transport: Transport | None = None,
    rules: RuleSet | None = None,
    logger: ILogger | None = None,
) -> ControlPlane:
    """
    Construct the control plane. Collaborators not passed in are built from
    `settings`; tests substitute fakes for the cloud-facing ones.
    """
    log = logger or get_logger("site_delivery")

    provider = provider or make_source_provider(settings)
    runner = runner or CodeBuildRunner(
        region=settings.region,
        poll_seconds=settings.build_poll_seconds,
        timeout_seconds=settings.build_timeout_seconds,
    )
    store = RunStore(Path(settings.run_root))

    channel = NotificationChannel(settings.subscribers, transport=transport, logger=log)
    feedback = BuildResultFeedbackService(
        sink=sink or _default_sink(settings, provider),
        validation_project=settings.validation_project,
        report=channel.notify_text,
        logger=log,
    )

    def _feedback_target(event: RoutedEvent) -> Any:
        return feedback.handle(event.payload)

    router = EventRouter(
        rules or _rules(settings),
        {NOTIFICATIONS: channel.publish, PR_FEEDBACK: _feedback_target},
        logger=log,
    )

    def _route_lifecycle(event: LifecycleEvent) -> None:
        router.dispatch(RoutedEvent.from_lifecycle(event, account=settings.account_id))

    machine = PipelineStateMachine(
        pipeline_name=settings.pipeline_name,
        provider=provider,
        actions=make_stage_actions(
            runner=runner,
            test_project=settings.test_project,
            release_project=settings.release_project,
            deployer=deployer or _default_deployer(settings),
        ),
        artifacts=artifacts or _default_artifacts(settings),
        emit=compose_emitters(RunJournal(store.journal_path), _route_lifecycle),
        store=store,
        logger=log,
    )

    validator = ChangeRequestValidator(
        provider=provider, runner=runner, project=settings.validation_project
    )

    return ControlPlane(
        settings=settings,
        provider=provider,
        machine=machine,
        router=router,
        channel=channel,
        feedback=feedback,
        validator=validator,
        store=store,
    )
