import threading
from typing import Dict, Iterator, List, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError, WaiterError

from configurations.settings import Settings
from importer_utils import Logger, ImporterUtil, statics
from importer_utils.errors import (AssumeRoleError, ChangeSetError, ResolverError, StackOperationError,
                                   UpdateResourceError, UploadError, WaiterTimeout)
from stackset_import.models import ResourceDrift, ScopedCredentials, StackInstance


def error_code(e: ClientError) -> str:
    return e.response.get('Error', {}).get('Code', '')


def error_message(e: ClientError) -> str:
    return e.response.get('Error', {}).get('Message', str(e))


class AwsManager:
    """
    One credential set bound to one region. Every cloud call made by the importer goes through here.

    Clients are created on first use and pooled for the lifetime of the manager.
    """

    def __init__(self, region: str, aws_access_key_id: str = None, aws_secret_access_key: str = None,
                 aws_session_token: str = None, profile_name: str = None, settings: Settings = None):
        self.region = region
        self.settings = settings or Settings(region=region)
        self.base_session = boto3.Session(
            aws_access_key_id=aws_access_key_id,
            aws_secret_access_key=aws_secret_access_key,
            aws_session_token=aws_session_token,
            profile_name=profile_name,
            region_name=region
        )
        self._clients = {}
        # boto3 sessions are not thread safe, resolver threads share this manager
        self._clients_lock = threading.Lock()

    @classmethod
    def from_credentials(cls, credentials: ScopedCredentials, region: str, settings: Settings = None):
        return cls(region=region,
                   aws_access_key_id=credentials.access_key,
                   aws_secret_access_key=credentials.secret_key,
                   aws_session_token=credentials.session_token,
                   settings=settings)

    def client(self, service_name: str):
        with self._clients_lock:
            if service_name not in self._clients:
                self._clients[service_name] = self.base_session.client(service_name)
            return self._clients[service_name]

    @property
    def cloudformation(self):
        return self.client("cloudformation")

    @property
    def cloudcontrol(self):
        return self.client("cloudcontrol")

    @property
    def iam(self):
        return self.client("iam")

    @property
    def sts(self):
        return self.client("sts")

    @property
    def s3(self):
        return self.client("s3")

    # ---------------------------------------------------------------- sts

    def assume_role(self, account: str, role_name: str, session_name: str,
                    duration: int = statics.DEFAULT_SESSION_DURATION) -> ScopedCredentials:
        role_arn = statics.ROLE_ARN_FORMAT.format(account=account, role_name=role_name)
        try:
            response = self.sts.assume_role(
                RoleArn=role_arn,
                RoleSessionName=session_name,
                DurationSeconds=duration
            )
        except ClientError as e:
            code = error_code(e)
            if code == 'AccessDenied':
                message = f"Access denied when assuming role {role_arn}. Check if the role exists and trusts your management account."
            elif code == 'InvalidParameterValue':
                message = f"Invalid role ARN: {role_arn}. Check the account ID and role name."
            else:
                message = f"Assume role into {account} failed: {error_message(e)}"
            Logger.logger.error(message)
            raise AssumeRoleError(message, error_code=code) from e
        except BotoCoreError as e:
            message = f"Assume role into {account} failed: {e}"
            Logger.logger.error(message)
            raise AssumeRoleError(message, error_code=type(e).__name__) from e
        return ScopedCredentials.from_sts(response['Credentials'])

    # ---------------------------------------------------------------- iam

    def get_role_name(self, role_name: str) -> Optional[str]:
        try:
            response = self.iam.get_role(RoleName=role_name)
        except ClientError as e:
            if error_code(e) in statics.NO_SUCH_ENTITY:
                return None
            raise ResolverError(f"failed to get role {role_name}: {error_message(e)}") from e
        return response['Role']['RoleName']

    def get_instance_profile_name(self, profile_name: str) -> Optional[str]:
        try:
            response = self.iam.get_instance_profile(InstanceProfileName=profile_name)
        except ClientError as e:
            if error_code(e) in statics.NO_SUCH_ENTITY:
                return None
            raise ResolverError(f"failed to get instance profile {profile_name}: {error_message(e)}") from e
        return response['InstanceProfile']['InstanceProfileName']

    def find_policy_arn_by_name(self, policy_name: str) -> Optional[str]:
        """
        Look for a managed policy, AWS or customer managed, whose name matches policy_name ignoring case.
        """
        wanted = policy_name.lower()
        try:
            paginator = self.iam.get_paginator('list_policies')
            for page in paginator.paginate(Scope='All'):
                for policy in page.get('Policies', []):
                    if policy.get('PolicyName', '').lower() == wanted:
                        return policy['Arn']
        except ClientError as e:
            raise ResolverError(f"failed to list policies: {error_message(e)}") from e
        return None

    # ---------------------------------------------------------------- s3

    def upload_template(self, bucket: str, data: bytes, key: str = None) -> str:
        key = key or ImporterUtil.random_object_key()
        try:
            self.s3.put_object(Bucket=bucket, Key=key, Body=data)
        except ClientError as e:
            Logger.logger.error(f"Failed to upload template to s3://{bucket}/{key}: {e}")
            raise UploadError(f"failed to upload data to S3: {error_message(e)}") from e
        url = statics.S3_URL_FORMAT.format(bucket=bucket, region=self.region, key=key)
        Logger.logger.debug(f"Template uploaded to {url}")
        return url

    # ---------------------------------------------------------------- stack sets

    def get_stackset_template(self, stackset_name: str) -> str:
        try:
            response = self.cloudformation.describe_stack_set(
                StackSetName=stackset_name,
                CallAs=self.settings.call_as
            )
        except ClientError as e:
            Logger.logger.error(f"Error describing StackSet {stackset_name}: {e}")
            raise StackOperationError(f"unable to get stack set template: {error_message(e)}") from e
        template_body = response.get('StackSet', {}).get('TemplateBody')
        if not template_body:
            raise StackOperationError(f"stack set {stackset_name} not found")
        return template_body

    def iter_stack_instances(self, stackset_name: str) -> Iterator[StackInstance]:
        try:
            paginator = self.cloudformation.get_paginator('list_stack_instances')
            for page in paginator.paginate(StackSetName=stackset_name, CallAs=self.settings.call_as):
                for summary in page.get('Summaries', []):
                    yield StackInstance.from_summary(summary)
        except ClientError as e:
            raise StackOperationError(f"failed to list stack instances: {error_message(e)}") from e

    def delete_stack_instances(self, stackset_name: str, account: str, region: str, retain_stacks: bool = True) -> str:
        try:
            response = self.cloudformation.delete_stack_instances(
                StackSetName=stackset_name,
                Accounts=[account],
                Regions=[region],
                RetainStacks=retain_stacks,
                CallAs=self.settings.call_as
            )
        except ClientError as e:
            raise StackOperationError(f"failed to delete stack instance {account}/{region}: {error_message(e)}") from e
        Logger.logger.info(f"Deleting stack instance {account}/{region} from StackSet {stackset_name}, operation {response['OperationId']}")
        return response['OperationId']

    def import_stacks_to_stack_set(self, stackset_name: str, stack_ids: List[str]) -> str:
        try:
            response = self.cloudformation.import_stacks_to_stack_set(
                StackSetName=stackset_name,
                StackIds=stack_ids,
                CallAs=self.settings.call_as
            )
        except ClientError as e:
            raise StackOperationError(f"failed to import stacks to stack set {stackset_name}: {error_message(e)}") from e
        Logger.logger.info(f"Importing {stack_ids} into StackSet {stackset_name}, operation {response['OperationId']}")
        return response['OperationId']

    def wait_for_stackset_operation(self, stackset_name: str, operation_id: str, delay: int = None,
                                    max_attempts: int = None, stop_event: threading.Event = None) -> str:
        """
        Poll a StackSet operation until it succeeds.

        :raises StackOperationError: the operation ended FAILED or STOPPED
        :raises WaiterTimeout: max_attempts polls were made without a terminal status
        """
        delay = delay or self.settings.operation_poll_interval
        attempt = 0
        while True:
            ImporterUtil.check_cancelled(stop_event)
            try:
                response = self.cloudformation.describe_stack_set_operation(
                    StackSetName=stackset_name,
                    OperationId=operation_id,
                    CallAs=self.settings.call_as
                )
            except ClientError as e:
                raise StackOperationError(f"failed to describe operation {operation_id}: {error_message(e)}") from e

            status = response['StackSetOperation']['Status']
            if status == statics.OPERATION_SUCCEEDED:
                Logger.logger.info(f"StackSet operation {operation_id} completed successfully.")
                return status
            if status in statics.OPERATION_FAILED_STATUSES:
                status_reason = response['StackSetOperation'].get('StatusReason', 'No reason provided')
                Logger.logger.error(f"StackSet operation {operation_id} finished with status: {status}")
                raise StackOperationError(f"operation {operation_id} failed with status: {status}, {status_reason}")

            attempt += 1
            if max_attempts is not None and attempt >= max_attempts:
                raise WaiterTimeout(f"StackSet operation {operation_id} timed out after {max_attempts} attempts")
            Logger.logger.debug(f"StackSet operation status is '{status}'. Waiting... (attempt {attempt})")
            ImporterUtil.sleep(delay, stop_event)

    # ---------------------------------------------------------------- stacks

    def _wait(self, waiter_name: str, timeout: int, error_class, description: str,
              stop_event: threading.Event = None, **kwargs):
        """
        Run a CloudFormation waiter one poll at a time so stop_event is honoured between polls.

        :raises WaiterTimeout: timeout seconds passed without a terminal state
        :raises OperationCancelled: stop_event was set
        """
        delay = self.settings.waiter_delay
        max_attempts = self.settings.max_attempts(timeout)
        waiter = self.cloudformation.get_waiter(waiter_name)
        for attempt in range(1, max_attempts + 1):
            ImporterUtil.check_cancelled(stop_event)
            try:
                waiter.wait(WaiterConfig={
                    "Delay": delay,  # Polling interval in seconds
                    "MaxAttempts": 1
                }, **kwargs)
                return
            except WaiterError as e:
                reason = e.kwargs.get('reason', str(e))
                if reason != statics.WAITER_MAX_ATTEMPTS_REASON:
                    last_response = e.last_response or {}
                    status_reason = last_response.get('StatusReason')
                    if not status_reason:
                        stacks = last_response.get('Stacks') or [{}]
                        status_reason = stacks[0].get('StackStatusReason')
                    raise error_class(f"{description} failed: {status_reason or reason}") from e
            if attempt < max_attempts:
                ImporterUtil.sleep(delay, stop_event)
        raise WaiterTimeout(f"timed out after {timeout}s waiting for {description}")

    def create_import_change_set(self, stack_name: str, resources_to_import: List[Dict],
                                 template_body: str = None, template_url: str = None,
                                 change_set_name: str = statics.IMPORT_CHANGE_SET_NAME) -> Optional[str]:
        if not template_url and not template_body:
            raise ValueError("Either 'template_url' or 'template_body' must be provided.")

        change_set_args = {
            'StackName': stack_name,
            'ChangeSetName': change_set_name,
            'ChangeSetType': statics.CHANGE_SET_TYPE_IMPORT,
            'Capabilities': [statics.CAPABILITY_NAMED_IAM],
            'ResourcesToImport': resources_to_import,
        }
        if template_url:
            change_set_args['TemplateURL'] = template_url
        else:
            change_set_args['TemplateBody'] = template_body

        try:
            response = self.cloudformation.create_change_set(**change_set_args)
        except ClientError as e:
            raise ChangeSetError(f"failed to create change set {change_set_name} on {stack_name}: {error_message(e)}") from e
        Logger.logger.info(f"Change set {change_set_name} creation initiated for: {stack_name}")
        return response.get('StackId')

    def wait_for_change_set_creation(self, stack_name: str, change_set_name: str = statics.IMPORT_CHANGE_SET_NAME,
                                     timeout: int = None, stop_event: threading.Event = None):
        Logger.logger.info(f"Waiting for change set {change_set_name} on {stack_name} to be created...")
        self._wait("change_set_create_complete", timeout or self.settings.change_set_timeout, ChangeSetError,
                   f"change set {change_set_name} creation", stop_event=stop_event,
                   StackName=stack_name, ChangeSetName=change_set_name)

    def execute_change_set(self, stack_name: str, change_set_name: str = statics.IMPORT_CHANGE_SET_NAME):
        try:
            self.cloudformation.execute_change_set(StackName=stack_name, ChangeSetName=change_set_name)
        except ClientError as e:
            raise ChangeSetError(f"failed to execute change set {change_set_name} on {stack_name}: {error_message(e)}") from e
        Logger.logger.info(f"Change set {change_set_name} executed on {stack_name}")

    def wait_for_stack_import(self, stack_name: str, timeout: int = None, stop_event: threading.Event = None):
        Logger.logger.info(f"Waiting for stack {stack_name} import to complete...")
        self._wait("stack_import_complete", timeout or self.settings.import_timeout, StackOperationError,
                   f"stack {stack_name} import", stop_event=stop_event, StackName=stack_name)

    def get_stack_parameters(self, stack_name: str) -> List[Dict]:
        try:
            response = self.cloudformation.describe_stacks(StackName=stack_name)
        except ClientError as e:
            raise StackOperationError(f"failed to describe stack {stack_name}: {error_message(e)}") from e
        stacks = response.get("Stacks", [])
        if not stacks:
            return []
        return stacks[0].get("Parameters", [])

    def update_stack(self, stack_name: str, template_body: str = None, template_url: str = None) -> bool:
        """
        Update the stack with rollback disabled, keeping its current parameter values.

        :return: False when the stack already matches the template
        """
        if not template_url and not template_body:
            raise ValueError("Either 'template_url' or 'template_body' must be provided.")

        update_args = {
            'StackName': stack_name,
            'Capabilities': [statics.CAPABILITY_NAMED_IAM],
            'DisableRollback': True,
        }
        if template_url:
            update_args['TemplateURL'] = template_url
        else:
            update_args['TemplateBody'] = template_body

        existing_parameters = self.get_stack_parameters(stack_name)
        if existing_parameters:
            update_args['Parameters'] = [{'ParameterKey': p['ParameterKey'], 'UsePreviousValue': True}
                                         for p in existing_parameters]

        try:
            self.cloudformation.update_stack(**update_args)
        except ClientError as e:
            if error_code(e) == 'ValidationError' and statics.NO_UPDATES_MESSAGE in error_message(e):
                Logger.logger.info(f"Stack {stack_name} is already up to date")
                return False
            raise StackOperationError(f"failed to update stack {stack_name}: {error_message(e)}") from e
        Logger.logger.info(f"Stack update initiated for: {stack_name}")
        return True

    def wait_for_stack_update(self, stack_name: str, timeout: int = None, stop_event: threading.Event = None):
        Logger.logger.info(f"Waiting for stack '{stack_name}' update to complete...")
        self._wait("stack_update_complete", timeout or self.settings.update_timeout, StackOperationError,
                   f"stack {stack_name} update", stop_event=stop_event, StackName=stack_name)

    def describe_stack_resource_drifts(self, stack_name: str) -> List[ResourceDrift]:
        drifts = []
        args = {'StackName': stack_name}
        while True:
            try:
                response = self.cloudformation.describe_stack_resource_drifts(**args)
            except ClientError as e:
                raise StackOperationError(f"failed to describe drifts of {stack_name}: {error_message(e)}") from e
            except BotoCoreError as e:
                raise StackOperationError(f"failed to describe drifts of {stack_name}: {e}") from e
            drifts.extend(ResourceDrift.from_api(d) for d in response.get('StackResourceDrifts', []))
            next_token = response.get('NextToken')
            if not next_token:
                return drifts
            args['NextToken'] = next_token

    # ---------------------------------------------------------------- cloud control

    def update_resource(self, identifier: str, type_name: str, patch_document: str) -> Dict:
        try:
            response = self.cloudcontrol.update_resource(
                Identifier=identifier,
                TypeName=type_name,
                PatchDocument=patch_document
            )
        except ClientError as e:
            raise UpdateResourceError(f"failed to update resource {type_name} {identifier}: {error_message(e)}") from e
        except BotoCoreError as e:
            # e.g. ParamValidationError when the drift has no physical id
            raise UpdateResourceError(f"failed to update resource {type_name} {identifier}: {e}") from e
        return response['ProgressEvent']

    def get_resource_request_status(self, request_token: str) -> Dict:
        try:
            response = self.cloudcontrol.get_resource_request_status(RequestToken=request_token)
        except ClientError as e:
            raise UpdateResourceError(f"failed to get request status {request_token}: {error_message(e)}") from e
        except BotoCoreError as e:
            raise UpdateResourceError(f"failed to get request status {request_token}: {e}") from e
        return response['ProgressEvent']
