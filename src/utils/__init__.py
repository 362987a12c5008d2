"""dumpvault - Shared utilities (logging, retries, wildcard masks, console output)."""

from utils.masks import compile_mask, matches, matches_any, names_matching_any, parse_mask_list

__all__ = [
    "compile_mask",
    "matches",
    "matches_any",
    "names_matching_any",
    "parse_mask_list",
]
