from typing import Dict, List, Optional
from sqlalchemy.exc import SQLAlchemyError
from ..db.session import get_session
from ..errors import NotFoundError, StoreError, ValidationError
from ..models.user import User
from ..utils.pagination import normalize_paging, page_offset
from .logging import log_event


PROFILE_FIELDS = ("name", "phone")


class UserService:
    """Read and profile-update access to user records.

    Accounts are created by the external auth provider; this service only
    mirrors and edits the local profile row.
    """

    def __init__(self, session_factory=get_session):
        self._session_factory = session_factory

    def get_user(self, user_id: str) -> Optional[Dict]:
        try:
            with self._session_factory() as session:
                u = session.query(User).filter(User.id == user_id).first()
                return u.to_dict() if u else None
        except SQLAlchemyError as exc:
            raise StoreError("get_user") from exc

    def update_profile(self, user_id: str, data: Dict) -> Dict:
        updates = {k: data[k] for k in PROFILE_FIELDS if k in (data or {})}
        if "name" in updates and not str(updates["name"] or "").strip():
            raise ValidationError("name cannot be empty", field="name")
        try:
            with self._session_factory() as session:
                u = session.query(User).filter(User.id == user_id).first()
                if u is None:
                    raise NotFoundError("user", user_id)
                for key, value in updates.items():
                    setattr(u, key, value.strip() if isinstance(value, str) else value)
                session.flush()
                result = u.to_dict()
        except SQLAlchemyError as exc:
            raise StoreError("update_profile") from exc
        log_event("info", "user.profile_updated", user_id=user_id, fields=sorted(updates))
        return result

    def is_admin(self, user_id: str) -> bool:
        user = self.get_user(user_id)
        return bool(user and user["role"] == "admin")

    def list_users(self, page: int = 1, page_size: int = 50) -> Dict:
        p, ps = normalize_paging(page, page_size)
        try:
            with self._session_factory() as session:
                q = session.query(User)
                total = q.count()
                rows = q.order_by(User.created_at.desc(), User.id).offset(page_offset(p, ps)).limit(ps).all()
                items = [u.to_dict() for u in rows]
        except SQLAlchemyError as exc:
            raise StoreError("list_users") from exc
        return {"items": items, "page": p, "page_size": ps, "total": total}
