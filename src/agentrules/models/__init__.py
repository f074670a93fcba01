from __future__ import annotations

from agentrules.models.github import ContentsEntry, DirectoryListing, FileContents
from agentrules.models.rules import DomainInfo, RuleContent
from agentrules.models.tools import (
    GetRulesInput,
    GetRulesOutput,
    ListRulesOutput,
    RuleDocument,
)

__all__ = [
    # rules
    "RuleContent",
    "DomainInfo",
    # github
    "ContentsEntry",
    "FileContents",
    "DirectoryListing",
    # tools
    "GetRulesInput",
    "GetRulesOutput",
    "ListRulesOutput",
    "RuleDocument",
]
