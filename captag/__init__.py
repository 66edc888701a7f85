"""
captag: caption and tag workbench for image datasets.

Quick Start:
    from captag import EngineState, RenameTag, create_store, load_or_create_config

    config = load_or_create_config()          # ~/.captag/captag.toml
    state = EngineState(create_store(config))
    print(state.ranked_tags()[:10])
    result = state.apply(RenameTag("blonde hair", "blond hair"))

CLI Usage:
    captag import ./dataset/
    captag tags --limit 20
    captag replace "(\\w+) eyes" "$1_eyes" --regex
    captag export ./out/

Environment Variables:
    CAPTAG_STORE_PATH  - Override default store location (~/.captag)
    CAPTAG_API_URL     - Use a remote captioning server instead of SQLite
    CAPTAG_VERBOSE     - Set to 1 for debug logging
"""

from .backend import create_store
from .captions import dedup_tokens, join, tidy, tokenize
from .config import StoreConfig, load_or_create_config
from .engine import BulkResult, EngineState
from .errors import CaptagError, MissingInputError, PatternError, StoreError
from .navigator import MatchNavigator, MatchStep
from .operations import (
    AppendCaption,
    DeleteTag,
    DeleteText,
    InsertAtMatch,
    Operation,
    RenameTag,
    SearchReplace,
    count_matching,
    plan,
)
from .tag_index import ranked_list, recompute
from .types import Item

__all__ = [
    "AppendCaption",
    "BulkResult",
    "CaptagError",
    "DeleteTag",
    "DeleteText",
    "EngineState",
    "InsertAtMatch",
    "Item",
    "MatchNavigator",
    "MatchStep",
    "MissingInputError",
    "Operation",
    "PatternError",
    "RenameTag",
    "SearchReplace",
    "StoreConfig",
    "StoreError",
    "count_matching",
    "create_store",
    "dedup_tokens",
    "join",
    "load_or_create_config",
    "plan",
    "ranked_list",
    "recompute",
    "tidy",
    "tokenize",
]
