from .models import (
    ChangeReference,
    ChangeRequestSignal,
    ChangeRequestTrigger,
    ProviderKind,
    SourceAction,
)
from .providers import (
    CodeCommitSource,
    GitHubSource,
    SourceProvider,
    make_source_provider,
)

__all__ = [
    "ChangeReference",
    "ChangeRequestSignal",
    "ChangeRequestTrigger",
    "ProviderKind",
    "SourceAction",
    "CodeCommitSource",
    "GitHubSource",
    "SourceProvider",
    "make_source_provider",
]
