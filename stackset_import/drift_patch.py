"""
Drift repair through the Cloud Control API.

Each drifted property becomes a one-operation JSON-Patch document. The drift
difference types describe the live resource relative to the template, so the
patch is the inverse: an ADD (extra live property) is removed, a REMOVE
(missing live property) is added back.
"""
import json
import threading
from typing import List

from importer_utils import Logger, ImporterUtil, statics
from importer_utils.errors import ImporterError, OperationCancelled, OperationTerminal, PatchDocumentError
from stackset_import.models import PatchOperation, PatchResult, PropertyDifference


def parse_expected_value(difference: PropertyDifference, strict: bool):
    raw = difference.expected_value
    try:
        return json.loads(raw)
    except (TypeError, ValueError) as e:
        if strict:
            raise PatchDocumentError(f"expected value of {difference.property_path} is not valid JSON: {raw!r}") from e
        return raw


def create_patch(difference: PropertyDifference) -> List[PatchOperation]:
    difference_type = difference.difference_type
    if difference_type == statics.DIFFERENCE_NOT_EQUAL:
        return [PatchOperation(op="replace", path=difference.property_path,
                               value=parse_expected_value(difference, strict=False))]
    if difference_type == statics.DIFFERENCE_ADD:
        return [PatchOperation(op="remove", path=difference.property_path)]
    if difference_type == statics.DIFFERENCE_REMOVE:
        return [PatchOperation(op="add", path=difference.property_path,
                               value=parse_expected_value(difference, strict=True))]
    raise PatchDocumentError(f"unknown difference type {difference_type} for {difference.property_path}")


def patch_document(patch: List[PatchOperation]) -> str:
    return json.dumps([operation.to_patch() for operation in patch], indent=2)


class DriftPatcher(object):

    def __init__(self, aws_manager, poll_interval: int = 5, stop_event: threading.Event = None):
        self.aws_manager = aws_manager
        self.poll_interval = poll_interval
        self.stop_event = stop_event

    def patch_resource(self, identifier: str, type_name: str,
                       differences: List[PropertyDifference]) -> List[PatchResult]:
        """
        Submit one patch per difference and wait for each to finish. A failed patch is
        logged and the remaining ones are still attempted.
        """
        results = []
        for difference in differences:
            ImporterUtil.check_cancelled(self.stop_event)
            try:
                patch = create_patch(difference)
            except PatchDocumentError as e:
                Logger.logger.error(f"Skipping {type_name} {identifier}: {e}")
                results.append(PatchResult(identifier=identifier, type_name=type_name,
                                           status="INVALID", message=str(e)))
                continue

            result = PatchResult(identifier=identifier, type_name=type_name, patch=patch, status="FAILED")
            try:
                progress = self.aws_manager.update_resource(identifier, type_name, patch_document(patch))
                result.status = self.wait_for_request(progress['RequestToken'])
                Logger.logger.success(f"Patched {difference.property_path} of {type_name} {identifier}")
            except OperationCancelled:
                raise
            except OperationTerminal as e:
                result.status = e.status
                result.message = str(e)
                Logger.logger.error(f"failed to update resource: {e}")
            except ImporterError as e:
                result.message = str(e)
                Logger.logger.error(f"failed to update resource: {e}")
            results.append(result)
        return results

    def wait_for_request(self, request_token: str) -> str:
        while True:
            ImporterUtil.check_cancelled(self.stop_event)
            progress = self.aws_manager.get_resource_request_status(request_token)
            status = progress.get('OperationStatus')
            Logger.logger.info(f"Status: {status}")
            if status == statics.REQUEST_SUCCESS:
                return status
            if status in statics.REQUEST_TERMINAL_FAILURES:
                raise OperationTerminal(f"operation failed: {progress.get('StatusMessage')}", status=status)
            ImporterUtil.sleep(self.poll_interval, self.stop_event)
