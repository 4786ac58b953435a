from uuid import uuid4

from chatline.core.core import Service
from chatline.core.modules.realtime.models import ConnectionIdentity
from chatline.core.modules.session.models import AuthToken
from chatline.core.modules.user.models import User
from chatline.utils import token_digest


class AccessService(Service):
    async def ensure_authenticated(self, auth_token: AuthToken) -> User:
        """Ensure the user is authenticated."""
        return await self.core.services.session.get_authenticated_user(auth_token)

    async def resolve_identity(self, auth_token: AuthToken) -> ConnectionIdentity:
        """Resolve a realtime connection to its user and a registry key of its own.

        Raises AuthenticationError before any connection state is created. Tabs share the
        login cookie, so the key is the token digest plus a per-connection suffix: closing
        one tab never removes another tab's registry entry.
        """
        user = await self.ensure_authenticated(auth_token)
        session_token = f"{token_digest(auth_token)}:{uuid4().hex}"
        return ConnectionIdentity(user_id=user.id, username=user.username, session_token=session_token)
