"""
Login session and tenant configuration.

Credentials are compared in plain text against the stored user collection. The
signed-in user is kept in the local store as the session marker, so a session
survives restarts and never expires; :meth:`AuthManager.logout` only clears
that marker.
"""

import enum
import logging
import threading
from typing import Any, Dict, List, Optional, Union

from . import database
from . import store
from . import sync
from .database import Key
from .models import CloudConfig, HospitalUnit, User
from .signals import signals
from ..settings import lib
from ..status import status


class SessionState(enum.StrEnum):
    Anonymous = 'anonymous'
    Authenticated = 'authenticated'


def default_config() -> CloudConfig:
    """Return the configuration used before any has been saved."""
    report = lib.settings.get_section('report')
    return CloudConfig(
        database_url=lib.settings.value('sync', 'endpoint', ''),
        report_title=report.get('title', ''),
        report_subtitle=report.get('subtitle', ''),
    )


class AuthManager:
    """Manages the current session and the tenant configuration."""

    def __init__(self):
        self._lock = threading.Lock()

    def init(self) -> None:
        """Seed the store and pin the tenant config to the configured endpoint when enabled."""
        store.store.init()

        endpoint = lib.settings.value('sync', 'endpoint', '')
        if not lib.settings.value('sync', 'pin_endpoint', False) or not endpoint:
            return

        stored = database.DatabaseAPI.read(Key.Config)
        if not isinstance(stored, dict) or stored.get('databaseURL') == endpoint:
            return

        config = self.get_config()
        logging.info(f'Pinning the remote endpoint to {endpoint}')
        config.database_url = endpoint
        database.DatabaseAPI.write(Key.Config, config.to_dict())
        signals.configChanged.emit(config)

    def login(self, email: str, password: Optional[str]) -> Optional[User]:
        """Sign in with an email and password.

        The email match ignores case; the password must match exactly. A user without a
        password only matches an empty or missing password.

        Returns:
            The signed-in user, or None. A failure never says which credential was wrong.
        """
        key = (email or '').strip().casefold()
        supplied = password or ''
        with self._lock:
            for user in store.store.get_users():
                if user.email.strip().casefold() == key and (user.password or '') == supplied:
                    database.DatabaseAPI.write(Key.CurrentUser, user.to_dict())
                    logging.info(f'{user.name} signed in.')
                    signals.sessionChanged.emit(user)
                    return user

        logging.info('Sign-in failed: invalid credentials.')
        signals.loginFailed.emit()
        return None

    def authenticate(self, email: str, password: Optional[str]) -> User:
        """Raising variant of :meth:`login`.

        Raises:
            status.CredentialsInvalidException: If no user matches.
        """
        user = self.login(email, password)
        if user is None:
            raise status.CredentialsInvalidException
        return user

    def logout(self) -> None:
        """Clear the session marker. Collections are left untouched."""
        with self._lock:
            database.DatabaseAPI.remove(Key.CurrentUser)
        logging.info('Signed out.')
        signals.sessionChanged.emit(None)

    def current_user(self) -> Optional[User]:
        data = database.DatabaseAPI.read(Key.CurrentUser)
        if not isinstance(data, dict):
            return None
        try:
            return User.from_dict(data)
        except status.ValidationException:
            logging.warning('Stored session is unreadable; treating as signed out.')
            return None

    def is_authenticated(self) -> bool:
        return self.current_user() is not None

    def state(self) -> SessionState:
        return SessionState.Authenticated if self.is_authenticated() else SessionState.Anonymous

    def require_user(self) -> User:
        """Return the current user.

        Raises:
            status.NotAuthenticatedException: If nobody is signed in.
        """
        user = self.current_user()
        if user is None:
            raise status.NotAuthenticatedException
        return user

    def update_current_user(self, user: Union[User, Dict[str, Any]]) -> User:
        """Save ``user`` and refresh the session marker with the stored version."""
        saved = store.store.save_user(user)
        database.DatabaseAPI.write(Key.CurrentUser, saved.to_dict())
        signals.sessionChanged.emit(saved)
        return saved

    def get_config(self) -> CloudConfig:
        """Return the stored tenant configuration, or the default one."""
        data = database.DatabaseAPI.read(Key.Config)
        if not isinstance(data, dict):
            return default_config()
        try:
            return CloudConfig.from_dict(data)
        except status.ValidationException:
            logging.warning('Stored configuration is unreadable; using defaults.')
            return default_config()

    def save_config(self, config: Union[CloudConfig, Dict[str, Any]]) -> CloudConfig:
        """Persist the tenant configuration and push it."""
        if isinstance(config, dict):
            config = CloudConfig.from_dict(config)
        data = config.to_dict()
        database.DatabaseAPI.write(Key.Config, data)
        signals.configChanged.emit(config)
        sync.sync.push(sync.TypeTag.Config, data)
        return config

    def sectors_for(self, unit: Union[str, HospitalUnit]) -> List[str]:
        """Configured sector names for a hospital unit."""
        config = self.get_config()
        if HospitalUnit(unit) == HospitalUnit.HABA:
            return list(config.custom_sectors_haba)
        return list(config.custom_sectors_hab)

    def groups_for(self, unit: Union[str, HospitalUnit]) -> List[str]:
        """Configured small-group names for a hospital unit."""
        config = self.get_config()
        if HospitalUnit(unit) == HospitalUnit.HABA:
            return list(config.custom_pgs_haba)
        return list(config.custom_pgs_hab)


auth_manager = AuthManager()
