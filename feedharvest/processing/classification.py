"""
Classification Policy
=====================

Best-effort primary-reporting attribution for candidate posts.

The classifier call is modeled as a three-way outcome so the attribution
defaults live in one pure function:

- ``Classified``: the verdict is used as-is
- ``Disabled``: no classifier configured, the post is assumed primary
- ``Unavailable``: the classifier failed, the post is marked non-primary
"""

from dataclasses import dataclass
from typing import Optional, Protocol, Tuple, Union

from ..models import CandidatePost, ClassificationVerdict
from ..utils.exceptions import FeedHarvestError
from ..utils.logging import get_logger_for_component


class Classifier(Protocol):
    async def classify(
        self,
        title: str,
        description: Optional[str] = None,
        content: Optional[str] = None,
        full_content: Optional[str] = None,
        url: Optional[str] = None,
    ) -> ClassificationVerdict:
        ...


@dataclass(frozen=True)
class Classified:
    verdict: ClassificationVerdict


@dataclass(frozen=True)
class Unavailable:
    reason: str


@dataclass(frozen=True)
class Disabled:
    pass


ClassificationOutcome = Union[Classified, Unavailable, Disabled]


def resolve_attribution(outcome: ClassificationOutcome) -> Tuple[bool, Optional[str]]:
    """Map an outcome to ``(is_primary_reporting, original_source_name)``."""
    if isinstance(outcome, Classified):
        return outcome.verdict.is_primary_reporting, outcome.verdict.original_source_name
    if isinstance(outcome, Disabled):
        return True, None
    return False, None


async def classify_candidate(
    classifier: Optional[Classifier], post: CandidatePost
) -> ClassificationOutcome:
    """Run the classifier on a candidate. Never raises."""
    if classifier is None:
        return Disabled()

    logger = get_logger_for_component("classification")
    try:
        verdict = await classifier.classify(
            title=post.title,
            description=post.description,
            content=post.content,
            full_content=post.full_content,
            url=post.url,
        )
    except FeedHarvestError as e:
        logger.warning(f"Classification unavailable for {post.url}: {e}")
        return Unavailable(reason=str(e))
    except Exception as e:
        logger.error(f"Unexpected classifier failure for {post.url}: {e}")
        return Unavailable(reason=f"{type(e).__name__}: {e}")

    logger.debug(
        f"Classified {post.url}: primary={verdict.is_primary_reporting} "
        f"source={verdict.original_source_name} confidence={verdict.confidence:.2f}"
    )
    return Classified(verdict=verdict)


def apply_attribution(post: CandidatePost, outcome: ClassificationOutcome) -> CandidatePost:
    """Copy of ``post`` carrying the attribution resolved from ``outcome``."""
    is_primary, source = resolve_attribution(outcome)
    return post.model_copy(
        update={"is_primary_reporting": is_primary, "original_source_name": source}
    )
