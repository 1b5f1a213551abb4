"""
Dépendance d'authentification admin
===================================

`admin_required` protège les routes `/admin` par un **Bearer token**
(`settings.ADMIN_TOKEN`).

Comportement & codes retour
---------------------------
- 401 si aucun header `Authorization: Bearer ...`.
- 403 si Bearer fourni mais invalide.
- True sinon.

Notes
-----
- `HTTPBearer(auto_error=False)` pour faire remonter 401/403 propres.
- Les préflights OPTIONS passent par le middleware CORS : protéger chaque route,
  pas le router entier.
"""
from __future__ import annotations

import secrets
from typing import Optional

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.config.settings import settings

_bearer = HTTPBearer(auto_error=False)


def admin_required(credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer)) -> bool:
    if credentials is None or not credentials.credentials:
        raise HTTPException(status_code=401, detail="missing_admin_token")
    if not secrets.compare_digest(credentials.credentials, settings.ADMIN_TOKEN):
        raise HTTPException(status_code=403, detail="invalid_admin_token")
    return True
