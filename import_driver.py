import threading
import time
import traceback

from botocore.exceptions import BotoCoreError

from configurations.settings import Settings
from importer_utils import ImporterUtil, Logger, statics
from importer_utils.errors import ImporterError
from infrastructure.aws import AwsManager
from stackset_import.create_import_template import CreateImportTemplate
from stackset_import.fix_drift import FixStackSetDrift
from stackset_import.fix_stack_instances import FixStackSetInstances

CREATE_IMPORT_TEMPLATE = "create-import-template"
FIX_STACKSET_STACK_INSTANCES = "fix-stackset-stack-instances"
FIX_STACKSET_DRIFT = "fix-stackset-drift"

WORKFLOWS = {
    CREATE_IMPORT_TEMPLATE: CreateImportTemplate,
    FIX_STACKSET_STACK_INSTANCES: FixStackSetInstances,
    FIX_STACKSET_DRIFT: FixStackSetDrift,
}


class ImportDriver(object):
    def __init__(self,
                 command: str,
                 settings: Settings,
                 stop_event: threading.Event = None,
                 aws_manager: AwsManager = None,
                 **kwargs):
        self.command = command
        self.settings = settings
        self.stop_event = stop_event or threading.Event()
        self.aws_manager = aws_manager
        self.kwargs = kwargs

    def main(self):
        status = statics.FAILURE
        summary = ""
        err = ""
        start = time.time()
        try:
            status, summary = self.run_workflow()
        except (ImporterError, BotoCoreError) as e:
            status = statics.FAILURE
            err = e
            summary = str(e)
            Logger.logger.debug(traceback.format_exc())
        finally:
            Logger.logger.info('{} completed in: {:.1f}s'.format(self.command, time.time() - start))
            self.final_report(status=status, err=err, summary=summary)
        return int(not status)

    def base_manager(self) -> AwsManager:
        if self.aws_manager is None:
            self.aws_manager = AwsManager(region=self.settings.region,
                                          profile_name=self.settings.profile,
                                          settings=self.settings)
        return self.aws_manager

    def build_workflow(self):
        workflow_class = WORKFLOWS.get(self.command)
        if workflow_class is None:
            raise ValueError("unknown command '{}'".format(self.command))
        kwargs = {k: v for k, v in self.kwargs.items() if v is not None}
        return workflow_class(aws_manager=self.base_manager(),
                              settings=self.settings,
                              stop_event=self.stop_event,
                              **kwargs)

    def run_workflow(self):
        workflow = self.build_workflow()
        Logger.logger.info("running {}".format(self.command))
        return workflow.start()

    def final_report(self, status, err, summary):
        if status == statics.SUCCESS:
            Logger.logger.success("{} status: SUCCESS".format(self.command))
            return
        Logger.logger.error("{} status: FAILURE".format(self.command))
        if err:
            Logger.logger.error("{}: {}".format(type(err).__name__, err))
        elif summary:
            Logger.logger.error(summary)

    @staticmethod
    def workflow_args(args: dict):
        ignored = ("command", "logger_level", "log_dir", "region", "profile", "call_as")
        return {k: ImporterUtil.get_arg_from_dict(args, k) for k in args if k not in ignored}
