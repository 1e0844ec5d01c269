from __future__ import annotations

import json

from site_delivery.core import StageFailure, stable_json_dumps
from site_delivery.pipeline import (
    BUILD_OUTPUT,
    StageActions,
    StageContext,
    StageOutcome,
)

from .deploy import SiteDeployer
from .runner import ArtifactsMode, BuildRequest, BuildRunner


def _pipeline_env(ctx: StageContext) -> dict[str, str]:
    return {
        "PIPELINE_NAME": ctx.pipeline_name,
        "PIPELINE_RUN_ID": ctx.run_id,
        "SOURCE_BRANCH": ctx.change.branch_name,
    }


def unit_tests_action(runner: BuildRunner, project: str):
    def _run_tests(ctx: StageContext) -> StageOutcome:
        outcome = runner.run_build(
            BuildRequest(
                project_name=project,
                source_version=ctx.change.after_commit,
                artifacts_mode=ArtifactsMode.NO_ARTIFACTS,
                environment=_pipeline_env(ctx),
            )
        )
        if not outcome.succeeded:
            raise StageFailure(
                f"Test build {outcome.build_id} finished {outcome.status}"
            )
        return StageOutcome(
            detail={"build_id": outcome.build_id, "log_link": outcome.log_link}
        )

    return _run_tests


def build_action(runner: BuildRunner, project: str):
    def _run_build(ctx: StageContext) -> StageOutcome:
        outcome = runner.run_build(
            BuildRequest(
                project_name=project,
                source_version=ctx.change.after_commit,
                artifacts_mode=ArtifactsMode.PIPELINE,
                environment=_pipeline_env(ctx),
            )
        )
        if not outcome.succeeded:
            raise StageFailure(
                f"Release build {outcome.build_id} finished {outcome.status}"
            )
        if not outcome.artifact_location:
            raise StageFailure(f"Release build {outcome.build_id} reported no artifact")

        descriptor = {
            "build_id": outcome.build_id,
            "location": outcome.artifact_location,
            "commit": ctx.change.after_commit,
        }
        return StageOutcome(
            artifacts={BUILD_OUTPUT: stable_json_dumps(descriptor).encode("utf-8")},
            detail={"build_id": outcome.build_id, "log_link": outcome.log_link},
        )

    return _run_build


def deploy_action(deployer: SiteDeployer):
    def _deploy(ctx: StageContext) -> StageOutcome:
        descriptor = json.loads(ctx.inputs[BUILD_OUTPUT].decode("utf-8"))
        result = deployer.deploy(descriptor, ctx.change)
        return StageOutcome(detail=result)

    return _deploy


def make_stage_actions(
    *,
    runner: BuildRunner,
    test_project: str,
    release_project: str,
    deployer: SiteDeployer,
) -> StageActions:
    return StageActions(
        test=unit_tests_action(runner, test_project),
        build=build_action(runner, release_project),
        deploy=deploy_action(deployer),
    )
