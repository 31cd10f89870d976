"""
Branch naming and merge flow for the MS Games repositories.

Work happens on short-lived branches cut from `candidate`:

    feature/<project>-<page-section>-<description>
    bugfix/<project>-<issue-id>-<description>
    docs/<project>-<description>
    refactor/<project>-<description>

Work branches are merged into `candidate` for QA. Tested `candidate` code is
merged into `release`, which is what gets deployed.
"""
import re
from enum import Enum
from typing import Iterable, Optional

from pydantic import BaseModel

SEGMENT_PATTERN = re.compile(r"^[a-z0-9]+$")
ISSUE_ID_PATTERN = re.compile(r"^[0-9]+$")

RELEASE_BRANCH = "release"
CANDIDATE_BRANCH = "candidate"


class BranchNameError(ValueError):
    pass


class BranchKind(str, Enum):
    RELEASE = "release"
    CANDIDATE = "candidate"
    FEATURE = "feature"
    BUGFIX = "bugfix"
    DOCS = "docs"
    REFACTOR = "refactor"


# Number of hyphen-delimited segments after the prefix
SEGMENT_COUNTS = {
    BranchKind.FEATURE: 3,
    BranchKind.BUGFIX: 3,
    BranchKind.DOCS: 2,
    BranchKind.REFACTOR: 2,
}

GRAMMAR = {
    BranchKind.FEATURE: "feature/<project>-<page-section>-<description>",
    BranchKind.BUGFIX: "bugfix/<project>-<issue-id>-<description>",
    BranchKind.DOCS: "docs/<project>-<description>",
    BranchKind.REFACTOR: "refactor/<project>-<description>",
}


class BranchName(BaseModel):
    name: str
    kind: BranchKind
    project: Optional[str] = None
    section: Optional[str] = None
    issue_id: Optional[str] = None
    description: Optional[str] = None

    @property
    def is_protected(self) -> bool:
        return self.kind in (BranchKind.RELEASE, BranchKind.CANDIDATE)


def parse_branch(name: str, projects: Optional[Iterable[str]] = None) -> BranchName:
    """
    Parse a branch name against the naming convention.

    Args:
        name: Branch name, e.g. "feature/beergame-dashboard-chart"
        projects: Optional set of known project names the <project> segment must belong to

    Raises:
        BranchNameError: naming the first rule the branch breaks
    """
    name = name.strip()
    if name == RELEASE_BRANCH:
        return BranchName(name=name, kind=BranchKind.RELEASE)
    if name == CANDIDATE_BRANCH:
        return BranchName(name=name, kind=BranchKind.CANDIDATE)

    prefix, slash, rest = name.partition("/")
    if not slash:
        raise BranchNameError(f"'{name}' has no '<type>/' prefix")
    try:
        kind = BranchKind(prefix)
    except ValueError:
        allowed = ", ".join(kind.value for kind in SEGMENT_COUNTS)
        raise BranchNameError(f"Unknown branch type '{prefix}', expected one of: {allowed}")
    if kind not in SEGMENT_COUNTS:
        raise BranchNameError(f"'{prefix}' is a protected branch and takes no suffix")

    segments = rest.split("-")
    expected = SEGMENT_COUNTS[kind]
    if len(segments) != expected:
        raise BranchNameError(
            f"'{name}' must have exactly {expected} hyphen-delimited segments after the prefix "
            f"({GRAMMAR[kind]}), found {len(segments)}"
        )
    for segment in segments:
        if not SEGMENT_PATTERN.match(segment):
            raise BranchNameError(
                f"Segment '{segment}' in '{name}' must be non-empty lowercase letters or digits"
            )

    project = segments[0]
    if projects is not None and project not in set(projects):
        raise BranchNameError(f"Unknown project '{project}'")

    branch = BranchName(name=name, kind=kind, project=project, description=segments[-1])
    if kind == BranchKind.FEATURE:
        branch.section = segments[1]
    elif kind == BranchKind.BUGFIX:
        if not ISSUE_ID_PATTERN.match(segments[1]):
            raise BranchNameError(f"Issue id '{segments[1]}' in '{name}' must be numeric")
        branch.issue_id = segments[1]
    return branch


def is_valid_branch(name: str, projects: Optional[Iterable[str]] = None) -> bool:
    try:
        parse_branch(name, projects)
    except BranchNameError:
        return False
    return True


def merge_target(branch: BranchName) -> str:
    """Branch that `branch` is merged into through a pull request."""
    if branch.kind == BranchKind.RELEASE:
        raise BranchNameError("release is the deployment branch and is not merged anywhere")
    if branch.kind == BranchKind.CANDIDATE:
        return RELEASE_BRANCH
    return CANDIDATE_BRANCH


def _slug(text: str) -> str:
    return re.sub(r"[^a-z0-9]", "", text.lower())


def suggest_branch_name(
    kind: BranchKind,
    project: str,
    description: str,
    section: Optional[str] = None,
    issue_id: Optional[str] = None,
) -> str:
    """Build a valid branch name from free text, squashing each part into one segment."""
    kind = BranchKind(kind)
    if kind not in SEGMENT_COUNTS:
        raise BranchNameError(f"Cannot create a new '{kind.value}' branch")
    parts = [_slug(project)]
    if kind == BranchKind.FEATURE:
        if not section:
            raise BranchNameError("feature branches need a page section")
        parts.append(_slug(section))
    elif kind == BranchKind.BUGFIX:
        if not issue_id:
            raise BranchNameError("bugfix branches need an issue id")
        parts.append(str(issue_id).lstrip("#"))
    parts.append(_slug(description))
    name = f"{kind.value}/{'-'.join(parts)}"
    return parse_branch(name).name
