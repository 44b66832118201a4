from typing import List

from importer_utils import Logger, statics
from importer_utils.errors import AssumeRoleError, StackOperationError
from stackset_import.base_workflow import BaseWorkflow
from stackset_import.drift_patch import DriftPatcher
from stackset_import.models import PatchResult, StackInstance


class FixStackSetDrift(BaseWorkflow):
    """
    Patch the drifted resources of every DRIFTED stack instance back to their template values.

    Best effort per instance: an instance whose role can not be assumed, or whose drifts can not be
    described, is skipped.
    """

    def __init__(self, aws_manager, stackset_name: str, **kwargs):
        super().__init__(aws_manager=aws_manager, **kwargs)
        self.stackset_name = stackset_name
        self.results: List[PatchResult] = []
        self.skipped: List[dict] = []

    def start(self):
        instances = 0
        for instance in self.aws_manager.iter_stack_instances(self.stackset_name):
            self.check_cancelled()
            if instance.drift_status != statics.DRIFT_STATUS_DRIFTED:
                continue
            instances += 1
            self.fix_instance(instance)

        failed = [r for r in self.results if not r.succeeded()]
        self.summary_data = {
            "stack_set": self.stackset_name,
            "drifted_instances": instances,
            "skipped_instances": self.skipped,
            "patches": len(self.results),
            "failed_patches": [r.model_dump(mode="json") for r in failed],
        }
        Logger.logger.success(f"{len(self.results) - len(failed)} of {len(self.results)} patches applied "
                              f"across {instances} drifted stack instances")
        return self.success()

    def _skip(self, instance: StackInstance, reason: str):
        self.skipped.append({"account": instance.account, "region": instance.region, "reason": reason})

    def fix_instance(self, instance: StackInstance):
        Logger.logger.info(f"Attempting to fix StackSet drift in account {instance.account}")
        try:
            manager = self.broker.assume(instance.account, instance.region)
        except AssumeRoleError as e:
            Logger.logger.error(f"failed to assume role: {e}")
            self._skip(instance, str(e))
            return

        try:
            drifts = manager.describe_stack_resource_drifts(instance.stack_id)
        except StackOperationError as e:
            Logger.logger.error(f"Skipping {instance.account}/{instance.region}: {e}")
            self._skip(instance, str(e))
            return

        patcher = DriftPatcher(manager, poll_interval=self.settings.request_poll_interval, stop_event=self.stop_event)
        for drift in drifts:
            if drift.drift_status == statics.RESOURCE_DRIFT_IN_SYNC:
                continue
            Logger.logger.info(f"Patching {drift.logical_resource_id} ({drift.resource_type}), "
                               f"{len(drift.property_differences)} differences")
            self.results.extend(patcher.patch_resource(drift.physical_resource_id, drift.resource_type,
                                                       drift.property_differences))
