from .actions import build_action, deploy_action, make_stage_actions, unit_tests_action
from .deploy import NullDeployer, S3SiteDeployer, SiteDeployer, split_s3_location
from .runner import (
    ArtifactsMode,
    BuildOutcome,
    BuildRequest,
    BuildRunner,
    BuildTimeout,
    CodeBuildRunner,
)
from .validator import ChangeRequestValidator

__all__ = [
    "build_action",
    "deploy_action",
    "make_stage_actions",
    "unit_tests_action",
    "NullDeployer",
    "S3SiteDeployer",
    "SiteDeployer",
    "split_s3_location",
    "ArtifactsMode",
    "BuildOutcome",
    "BuildRequest",
    "BuildRunner",
    "BuildTimeout",
    "CodeBuildRunner",
    "ChangeRequestValidator",
]
