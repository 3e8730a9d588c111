"""Legal status transitions for scheduled posts."""

from types import MappingProxyType

from social_publisher.domain.enums import PostStatus
from social_publisher.domain.errors import InvalidTransitionError

ALLOWED_TRANSITIONS: MappingProxyType[PostStatus, frozenset[PostStatus]] = MappingProxyType(
    {
        PostStatus.SCHEDULED: frozenset({PostStatus.PROCESSING}),
        PostStatus.PROCESSING: frozenset(
            {PostStatus.PUBLISHED, PostStatus.FAILED, PostStatus.DRAFT}
        ),
        PostStatus.FAILED: frozenset({PostStatus.PROCESSING}),
        PostStatus.PUBLISHED: frozenset(),
        PostStatus.DRAFT: frozenset(),
    }
)


def can_transition(current: PostStatus | str, target: PostStatus | str) -> bool:
    return PostStatus(target) in ALLOWED_TRANSITIONS[PostStatus(current)]


def ensure_transition(current: PostStatus | str, target: PostStatus | str) -> None:
    """Raise InvalidTransitionError unless current -> target is legal."""
    if not can_transition(current, target):
        raise InvalidTransitionError(PostStatus(current), PostStatus(target))


def sources_for(target: PostStatus) -> frozenset[PostStatus]:
    """All states from which target can be entered."""
    return frozenset(
        source for source, targets in ALLOWED_TRANSITIONS.items() if target in targets
    )
