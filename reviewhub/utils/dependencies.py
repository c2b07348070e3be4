from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from starlette.requests import HTTPConnection

from reviewhub.database.connection import mongo_db_dependency
from reviewhub.schemas.identity import Identity
from reviewhub.services.container import ServiceContainer

from .errors import AuthenticationError, NotFoundError
from .security import decode_access_token

bearer_scheme = HTTPBearer(auto_error=False)


def get_services(connection: HTTPConnection, db=Depends(mongo_db_dependency)) -> ServiceContainer:
    return ServiceContainer(db, connection.app.state.realtime)


async def get_current_identity(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    services: ServiceContainer = Depends(get_services),
) -> Identity:
    claims = decode_access_token(credentials.credentials if credentials else None)
    try:
        return await services.identities.resolve(claims["sub"])
    except NotFoundError:
        raise AuthenticationError("User not found")
