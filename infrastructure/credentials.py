import time
from typing import Dict, Tuple

from importer_utils import Logger, statics
from infrastructure.aws import AwsManager
from stackset_import.models import ScopedCredentials


class CredentialBroker(object):
    """
    Hands out AwsManagers scoped to (account, region) by assuming role_name from the base manager.

    Managers are cached per (account, region) for the process lifetime and re-assumed when their
    credentials get within refresh_margin seconds of expiring.
    """

    def __init__(self, base_manager: AwsManager, role_name: str,
                 duration: int = statics.DEFAULT_SESSION_DURATION,
                 refresh_margin: int = statics.CREDENTIALS_REFRESH_MARGIN):
        self.base_manager = base_manager
        self.role_name = role_name
        self.duration = duration
        self.refresh_margin = refresh_margin
        self._cache: Dict[Tuple[str, str], Tuple[ScopedCredentials, AwsManager]] = {}

    @staticmethod
    def session_name():
        return statics.SESSION_NAME_FORMAT.format(timestamp=int(time.time()))

    def credentials_for(self, account: str, region: str) -> ScopedCredentials:
        return self._get(account, region)[0]

    def assume(self, account: str, region: str) -> AwsManager:
        return self._get(account, region)[1]

    def _get(self, account: str, region: str):
        key = (account, region)
        cached = self._cache.get(key)
        if cached and not cached[0].expires_within(self.refresh_margin):
            return cached

        Logger.logger.info(f"Assuming role {self.role_name} in {account}/{region}")
        credentials = self.base_manager.assume_role(account=account,
                                                    role_name=self.role_name,
                                                    session_name=self.session_name(),
                                                    duration=self.duration)
        manager = AwsManager.from_credentials(credentials, region=region, settings=self.base_manager.settings)
        self._cache[key] = (credentials, manager)
        return self._cache[key]
