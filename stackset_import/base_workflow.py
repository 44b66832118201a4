import threading

from configurations.settings import Settings
from importer_utils import ImporterUtil, Logger, statics
from infrastructure.aws import AwsManager
from infrastructure.credentials import CredentialBroker
from stackset_import.identity_resolver import IdentityResolver
from stackset_import.import_plan import ImportPlanBuilder


class BaseWorkflow(object):
    def __init__(self, aws_manager: AwsManager, settings: Settings = None, role_name: str = None,
                 broker: CredentialBroker = None, stop_event: threading.Event = None, **kwargs):
        # objects
        self.aws_manager = aws_manager
        self.settings = settings or aws_manager.settings
        self.role_name = role_name
        self.stop_event = stop_event
        self.kwargs = kwargs

        if broker is None and role_name:
            broker = CredentialBroker(base_manager=aws_manager, role_name=role_name,
                                      duration=self.settings.session_duration)
        self.broker = broker

        self.summary_data = {}

    def start(self):
        raise NotImplementedError

    def check_cancelled(self):
        ImporterUtil.check_cancelled(self.stop_event)

    def plan_builder(self, aws_manager: AwsManager) -> ImportPlanBuilder:
        return ImportPlanBuilder(IdentityResolver(aws_manager, max_workers=self.settings.resolver_workers))

    def summary(self):
        return ImporterUtil.json_dumps(self.summary_data, indent=4)

    def success(self):
        Logger.logger.debug(f"workflow summary: {self.summary()}")
        return statics.SUCCESS, self.summary()
