"""
Ownership checks for owner-scoped resources.

Each resource kind registers a lookup and an owner accessor; callers pick
the kind from the ResourceKind enum instead of resolving a model by name.
"""
import enum
import logging
from dataclasses import dataclass
from typing import Any, Callable, Iterable, List, Optional

from app.models import AppUser, Category, Discount, Product
from app.exceptions import NotFoundError, DiscountNotFoundError, NotOwnerError

logger = logging.getLogger(__name__)


class ResourceKind(enum.Enum):
    DISCOUNT = 'discount'
    CATEGORY = 'category'
    PRODUCT = 'product'


class Access(enum.Enum):
    READ = 'read'
    WRITE = 'write'


@dataclass(frozen=True)
class OwnedResource:
    """Lookup capability for one resource kind."""
    model: Any
    find_by_id: Callable[[Any, int], Optional[Any]]
    owner_of: Callable[[Any], int]
    not_found: Callable[[], NotFoundError]
    # Admins may read every kind; writes stay with the owner
    admin_can_read: bool = True


def _finder(model):
    def find_by_id(session, resource_id):
        return session.get(model, resource_id)
    return find_by_id


REGISTRY = {
    ResourceKind.DISCOUNT: OwnedResource(
        model=Discount,
        find_by_id=_finder(Discount),
        owner_of=lambda d: d.created_by,
        not_found=DiscountNotFoundError,
    ),
    ResourceKind.CATEGORY: OwnedResource(
        model=Category,
        find_by_id=_finder(Category),
        owner_of=lambda c: c.created_by,
        not_found=lambda: NotFoundError('Category not found'),
    ),
    ResourceKind.PRODUCT: OwnedResource(
        model=Product,
        find_by_id=_finder(Product),
        owner_of=lambda p: p.created_by,
        not_found=lambda: NotFoundError('Product not found'),
    ),
}


def can_access(kind: ResourceKind, resource, requester: AppUser, access: Access = Access.WRITE) -> bool:
    entry = REGISTRY[kind]
    if entry.owner_of(resource) == requester.id:
        return True
    return access is Access.READ and entry.admin_can_read and requester.is_admin()


def get_owned_or_raise(
    session,
    kind: ResourceKind,
    resource_id: int,
    requester: AppUser,
    access: Access = Access.WRITE
):
    """
    Load a resource and verify the requester may access it.

    Raises:
        NotFoundError (kind-specific) if missing
        NotOwnerError if owned by someone else
    """
    entry = REGISTRY[kind]
    resource = entry.find_by_id(session, resource_id)
    if resource is None:
        raise entry.not_found()

    if not can_access(kind, resource, requester, access):
        logger.warning(
            f"Ownership violation: user {requester.id} tried to {access.value} "
            f"{kind.value} {resource_id} owned by {entry.owner_of(resource)}"
        )
        raise NotOwnerError(f"You do not own this {kind.value}")
    return resource


def find_not_owned(session, kind: ResourceKind, ids: Iterable[int], owner_id: int) -> List[int]:
    """Return the ids (among those that exist) not owned by owner_id."""
    entry = REGISTRY[kind]
    model = entry.model
    ids = list(ids)
    if not ids:
        return []
    rows = session.query(model).filter(model.id.in_(ids)).all()
    return [row.id for row in rows if entry.owner_of(row) != owner_id]


def load_owned_many(session, kind: ResourceKind, ids: Iterable[int], owner_id: int) -> List[Any]:
    """
    Load several resources that must all exist and belong to owner_id.

    Returns the rows; raises NotFoundError naming the missing ids.
    """
    entry = REGISTRY[kind]
    model = entry.model
    ids = list(dict.fromkeys(ids))
    if not ids:
        return []
    rows = session.query(model).filter(model.id.in_(ids)).all()
    owned = {row.id: row for row in rows if entry.owner_of(row) == owner_id}
    missing = [i for i in ids if i not in owned]
    if missing:
        raise NotFoundError(
            f"{kind.value.capitalize()}(s) not found in your shop: {', '.join(map(str, missing))}",
            payload={'missing': missing}
        )
    return [owned[i] for i in ids]
