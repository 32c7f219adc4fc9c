# Discovery module - Query model and the matching/dedup components
# Pure engine pieces: no registry access except through interfaces

from .interfaces import (
    SearchOptions, CommandSearcher, ModuleTable, ModuleCatalog,
    CommandMaterializer, VisibilityPolicy, PublicOnlyVisibility, DiscoveryContext,
)
from .query import CommandQuery, MatchState
from .patterns import PatternSet
from .matching import MatchEvaluator
from .identity import IdentityTracker, within_source_key
from .dynamic_params import DynamicParameterResolver
from .sources import PrimarySource, SecondarySource, AvailableModuleSource
from .finalizer import ResultFinalizer, CommandSummary

__all__ = [
    "SearchOptions", "CommandSearcher", "ModuleTable", "ModuleCatalog",
    "CommandMaterializer", "VisibilityPolicy", "PublicOnlyVisibility", "DiscoveryContext",
    "CommandQuery", "MatchState",
    "PatternSet",
    "MatchEvaluator",
    "IdentityTracker", "within_source_key",
    "DynamicParameterResolver",
    "PrimarySource", "SecondarySource", "AvailableModuleSource",
    "ResultFinalizer", "CommandSummary",
]
