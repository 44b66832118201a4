from typing import List, Optional

from importer_utils import ImporterUtil, Logger, statics
from importer_utils.errors import ImporterError, OperationCancelled, StackOperationError
from stackset_import.base_workflow import BaseWorkflow
from stackset_import.models import InstanceRepairResult, RepairState, StackInstance


class FixStackSetInstances(BaseWorkflow):
    """
    Repair the FAILED stack instances of a StackSet.

    For each failed instance, in the instance's account: adopt the IAM resources that already
    exist through an IMPORT change set, update the stack to the StackSet template, then detach
    the stack from the StackSet and import it back.

    A failing instance stops the run unless continue_on_error is set, in which case it is
    recorded as FAILED and the next instance is processed.
    """

    def __init__(self, aws_manager, stackset_name: str, s3_bucket: str = None, continue_on_error: bool = False,
                 **kwargs):
        super().__init__(aws_manager=aws_manager, **kwargs)
        self.stackset_name = stackset_name
        self.s3_bucket = s3_bucket
        self.continue_on_error = continue_on_error
        self.results: List[InstanceRepairResult] = []

    def start(self):
        template_body = self.aws_manager.get_stackset_template(self.stackset_name)
        template_url = None
        if self.s3_bucket:
            template_url = self.aws_manager.upload_template(self.s3_bucket, template_body.encode("utf-8"))
        elif len(template_body.encode("utf-8")) > statics.TEMPLATE_BODY_LIMIT:
            Logger.logger.warning(f"StackSet template is larger than {statics.TEMPLATE_BODY_LIMIT} bytes, "
                                  f"pass --s3-bucket if CloudFormation rejects the template body")

        for instance in self.aws_manager.iter_stack_instances(self.stackset_name):
            self.check_cancelled()
            if instance.detailed_status != statics.DETAILED_STATUS_FAILED:
                continue
            self.repair_instance(instance, template_body, template_url)

        self.summary_data = {
            "stack_set": self.stackset_name,
            "instances": [r.model_dump(mode="json") for r in self.results],
        }
        failed = [r for r in self.results if not r.is_repaired()]
        if failed:
            Logger.logger.error(f"{len(failed)} of {len(self.results)} failed stack instances were not repaired")
            return statics.FAILURE, self.summary()
        Logger.logger.success(f"{len(self.results)} stack instances repaired in {self.stackset_name}")
        return self.success()

    def _advance(self, result: InstanceRepairResult, state: RepairState):
        result.state = state
        result.history.append(state)
        Logger.logger.info(f"{result.account}/{result.region} {result.stack_name}: {state.value}")

    def repair_instance(self, instance: StackInstance, template_body: str,
                        template_url: Optional[str] = None) -> InstanceRepairResult:
        result = InstanceRepairResult(account=instance.account, region=instance.region,
                                      stack_name=ImporterUtil.extract_stack_name(instance.stack_id or ""))
        result.history.append(RepairState.INIT)
        self.results.append(result)
        try:
            self._repair(instance, result, template_body, template_url)
        except OperationCancelled:
            self._fail(result, "cancelled")
            raise
        except ImporterError as e:
            self._fail(result, str(e))
            if not self.continue_on_error:
                raise
        return result

    def _fail(self, result: InstanceRepairResult, error: str):
        result.error = error
        self._advance(result, RepairState.FAILED)
        Logger.logger.error(f"Stack instance {result.account}/{result.region} repair failed: {error}")

    def _repair(self, instance: StackInstance, result: InstanceRepairResult, template_body: str,
                template_url: Optional[str]):
        stack_name = result.stack_name
        if not stack_name:
            raise StackOperationError(f"stack instance {instance.account}/{instance.region} has no stack id")

        manager = self.broker.assume(instance.account, instance.region)
        self._advance(result, RepairState.CREDS_READY)

        # lookups run in the target account
        plan = self.plan_builder(manager).build_from_bytes(template_body)
        self._advance(result, RepairState.PLAN_BUILT)

        stack_id = None
        if plan.is_empty():
            Logger.logger.info(f"Nothing to import into {stack_name}")
        else:
            self.check_cancelled()
            import_url = None
            if self.s3_bucket:
                import_url = self.aws_manager.upload_template(self.s3_bucket, plan.template_body)
                self._advance(result, RepairState.TEMPLATE_UPLOADED)

            self.check_cancelled()
            stack_id = manager.create_import_change_set(stack_name, plan.resources_to_import(),
                                                        template_body=None if import_url else plan.template_text(),
                                                        template_url=import_url)
            self._advance(result, RepairState.CHANGESET_CREATED)
            manager.wait_for_change_set_creation(stack_name, stop_event=self.stop_event)
            self.check_cancelled()
            manager.execute_change_set(stack_name)
            self._advance(result, RepairState.CHANGESET_EXECUTED)

            manager.wait_for_stack_import(stack_name, stop_event=self.stop_event)
            self._advance(result, RepairState.IMPORT_COMPLETE)

        self.check_cancelled()
        # back to the full StackSet template
        if manager.update_stack(stack_name,
                                template_body=None if template_url else template_body,
                                template_url=template_url):
            manager.wait_for_stack_update(stack_name, stop_event=self.stop_event)
        self._advance(result, RepairState.STACK_UPDATED)

        self.check_cancelled()
        operation_id = self.aws_manager.delete_stack_instances(self.stackset_name, instance.account, instance.region,
                                                               retain_stacks=True)
        self.aws_manager.wait_for_stackset_operation(self.stackset_name, operation_id, stop_event=self.stop_event)
        self._advance(result, RepairState.DETACHED)

        self.check_cancelled()
        operation_id = self.aws_manager.import_stacks_to_stack_set(self.stackset_name, [stack_id or instance.stack_id])
        self.aws_manager.wait_for_stackset_operation(self.stackset_name, operation_id, stop_event=self.stop_event)
        self._advance(result, RepairState.REATTACHED)
        Logger.logger.success(f"Stack instance {instance.account}/{instance.region} successfully imported")
