from typing import Type, TypeVar

from sqlalchemy.orm import Session

from marketplace.core.exceptions import NotFoundError

ModelT = TypeVar("ModelT")


def get_owned_or_404(
    db: Session,
    model: Type[ModelT],
    resource_id: int,
    user_id: int,
    message: str = "Resource not found",
    lock: bool = False,
) -> ModelT:
    """
    Load a user-owned row by id.

    Rows owned by someone else are reported exactly like missing ones so the
    response does not reveal that the resource exists.
    """
    query = db.query(model).filter(model.id == resource_id, model.user_id == user_id)
    if lock:
        query = query.with_for_update()
    resource = query.first()
    if resource is None:
        raise NotFoundError(message)
    return resource
