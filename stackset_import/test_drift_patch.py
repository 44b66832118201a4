"""
Unit tests for drift_patch.py
"""

import json
import threading
import unittest
from unittest.mock import MagicMock

from botocore.exceptions import ParamValidationError

from importer_utils.errors import OperationCancelled, PatchDocumentError, UpdateResourceError
from infrastructure.aws import AwsManager
from stackset_import.drift_patch import DriftPatcher, create_patch, patch_document
from stackset_import.models import PropertyDifference


def difference(difference_type, path, expected=None):
    return PropertyDifference(difference_type=difference_type, property_path=path, expected_value=expected)


def progress(status, message=None, token="token-1"):
    event = {"OperationStatus": status, "RequestToken": token}
    if message:
        event["StatusMessage"] = message
    return event


class TestCreatePatch(unittest.TestCase):

    def test_inversion(self):
        differences = [difference("ADD", "/a", "null"),
                       difference("REMOVE", "/b", "1"),
                       difference("NOT_EQUAL", "/c", '"x"')]
        documents = [json.loads(patch_document(create_patch(d))) for d in differences]
        self.assertEqual(documents, [
            [{"op": "remove", "path": "/a"}],
            [{"op": "add", "path": "/b", "value": 1}],
            [{"op": "replace", "path": "/c", "value": "x"}],
        ])

    def test_not_equal_keeps_raw_string(self):
        patch = create_patch(difference("NOT_EQUAL", "/Description", "plain text"))
        self.assertEqual(patch[0].value, "plain text")

    def test_not_equal_structured_value(self):
        patch = create_patch(difference("NOT_EQUAL", "/Tags", '[{"Key": "k", "Value": "v"}]'))
        self.assertEqual(patch[0].value, [{"Key": "k", "Value": "v"}])

    def test_remove_needs_json(self):
        with self.assertRaises(PatchDocumentError):
            create_patch(difference("REMOVE", "/b", "not json"))

    def test_unknown_difference_type(self):
        with self.assertRaises(PatchDocumentError):
            create_patch(difference("MOVED", "/b", "1"))

    def test_document_has_no_value_for_remove(self):
        document = json.loads(patch_document(create_patch(difference("ADD", "/a", "5"))))
        self.assertNotIn("value", document[0])


class TestDriftPatcher(unittest.TestCase):

    def setUp(self):
        self.manager = MagicMock()
        self.manager.update_resource.return_value = progress("IN_PROGRESS")
        self.patcher = DriftPatcher(self.manager, poll_interval=0)

    def test_waits_for_success(self):
        self.manager.get_resource_request_status.side_effect = [progress("PENDING"), progress("IN_PROGRESS"),
                                                                progress("SUCCESS")]
        results = self.patcher.patch_resource("role-a", "AWS::IAM::Role", [difference("NOT_EQUAL", "/Path", '"/"')])

        self.assertEqual(len(results), 1)
        self.assertTrue(results[0].succeeded())
        self.assertEqual(self.manager.get_resource_request_status.call_count, 3)
        identifier, type_name, document = self.manager.update_resource.call_args[0]
        self.assertEqual((identifier, type_name), ("role-a", "AWS::IAM::Role"))
        self.assertEqual(json.loads(document), [{"op": "replace", "path": "/Path", "value": "/"}])

    def test_one_patch_per_difference_in_order(self):
        self.manager.get_resource_request_status.return_value = progress("SUCCESS")
        self.patcher.patch_resource("role-a", "AWS::IAM::Role", [difference("ADD", "/a", "null"),
                                                                 difference("REMOVE", "/b", "1")])
        documents = [json.loads(c[0][2]) for c in self.manager.update_resource.call_args_list]
        self.assertEqual(documents, [[{"op": "remove", "path": "/a"}], [{"op": "add", "path": "/b", "value": 1}]])

    def test_terminal_failure_continues_with_next(self):
        self.manager.get_resource_request_status.side_effect = [progress("FAILED", "not authorized"),
                                                                progress("SUCCESS")]
        results = self.patcher.patch_resource("role-a", "AWS::IAM::Role", [difference("NOT_EQUAL", "/a", "1"),
                                                                           difference("NOT_EQUAL", "/b", "2")])
        self.assertEqual([r.status for r in results], ["FAILED", "SUCCESS"])
        self.assertIn("not authorized", results[0].message)

    def test_cancel_is_terminal(self):
        self.manager.get_resource_request_status.return_value = progress("CANCEL_COMPLETE")
        results = self.patcher.patch_resource("role-a", "AWS::IAM::Role", [difference("NOT_EQUAL", "/a", "1")])
        self.assertEqual(results[0].status, "CANCEL_COMPLETE")
        self.assertFalse(results[0].succeeded())

    def test_invalid_difference_is_skipped(self):
        self.manager.get_resource_request_status.return_value = progress("SUCCESS")
        results = self.patcher.patch_resource("role-a", "AWS::IAM::Role", [difference("REMOVE", "/a", "{broken"),
                                                                           difference("NOT_EQUAL", "/b", "2")])
        self.assertEqual([r.status for r in results], ["INVALID", "SUCCESS"])
        self.assertEqual(self.manager.update_resource.call_count, 1)

    def test_submit_error_continues_with_next(self):
        self.manager.update_resource.side_effect = [UpdateResourceError("throttled"), progress("IN_PROGRESS")]
        self.manager.get_resource_request_status.return_value = progress("SUCCESS")
        results = self.patcher.patch_resource("role-a", "AWS::IAM::Role", [difference("NOT_EQUAL", "/a", "1"),
                                                                           difference("NOT_EQUAL", "/b", "2")])
        self.assertEqual([r.status for r in results], ["FAILED", "SUCCESS"])
        self.assertEqual(results[0].message, "throttled")

    def test_client_side_error_continues_with_next(self):
        cloudcontrol = MagicMock()
        cloudcontrol.update_resource.side_effect = [
            ParamValidationError(report="Invalid type for parameter Identifier, value: None"),
            {"ProgressEvent": progress("IN_PROGRESS")}]
        cloudcontrol.get_resource_request_status.return_value = {"ProgressEvent": progress("SUCCESS")}
        manager = AwsManager(region="us-east-1")
        manager._clients["cloudcontrol"] = cloudcontrol

        results = DriftPatcher(manager, poll_interval=0).patch_resource(
            None, "AWS::IAM::Role", [difference("NOT_EQUAL", "/a", "1"), difference("NOT_EQUAL", "/b", "2")])
        self.assertEqual([r.status for r in results], ["FAILED", "SUCCESS"])
        self.assertIn("Identifier", results[0].message)

    def test_stop_event_cancels(self):
        stop_event = threading.Event()
        stop_event.set()
        patcher = DriftPatcher(self.manager, poll_interval=0, stop_event=stop_event)
        with self.assertRaises(OperationCancelled):
            patcher.patch_resource("role-a", "AWS::IAM::Role", [difference("NOT_EQUAL", "/a", "1")])
        self.manager.update_resource.assert_not_called()


if __name__ == "__main__":
    unittest.main()
