"""Branch names for secondary (sample) repositories."""

import re

DEFAULT_DERIVED_SUFFIX = "-samples"

_SEPARATORS = re.compile(r"[/\\]")


class DerivedBranchNamer:
    """Maps a primary branch name to the branch used in the sample repository.

    Every path separator becomes ``-`` and the suffix is appended, so
    ``bugfix/RT-same-scope-as-AT`` becomes ``bugfix-RT-same-scope-as-AT-samples``.
    Nothing else about the name changes.
    """

    def __init__(self, suffix: str = DEFAULT_DERIVED_SUFFIX):
        if not suffix or _SEPARATORS.search(suffix):
            raise ValueError(f"Invalid derived branch suffix: '{suffix}'")
        self.suffix = suffix

    def derive(self, branch_name: str) -> str:
        return _SEPARATORS.sub("-", branch_name) + self.suffix


def derive_branch_name(branch_name: str, suffix: str = DEFAULT_DERIVED_SUFFIX) -> str:
    return DerivedBranchNamer(suffix).derive(branch_name)
