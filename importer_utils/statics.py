SUCCESS = True
FAILURE = False

# output files of create-import-template
IMPORT_TEMPLATE_FILE = "cloudformation_template.yaml"
RESOURCES_TO_IMPORT_FILE = "ResourcesToImport.txt"
OUTPUT_FILE_MODE = 0o644

# resource types with a live-resource lookup
IAM_ROLE_TYPE = "AWS::IAM::Role"
IAM_MANAGED_POLICY_TYPE = "AWS::IAM::ManagedPolicy"
IAM_INSTANCE_PROFILE_TYPE = "AWS::IAM::InstanceProfile"

# template properties holding the physical names
ROLE_NAME_PROPERTY = "RoleName"
MANAGED_POLICY_NAME_PROPERTY = "ManagedPolicyName"
INSTANCE_PROFILE_NAME_PROPERTY = "InstanceProfileName"

# ResourceIdentifier keys, provider mandated
ROLE_IDENTIFIER_KEY = "RoleName"
POLICY_IDENTIFIER_KEY = "PolicyArn"
INSTANCE_PROFILE_IDENTIFIER_KEY = "InstanceProfileName"

# template keys
RESOURCES_KEY = "Resources"
TYPE_KEY = "Type"
PROPERTIES_KEY = "Properties"
DELETION_POLICY_KEY = "DeletionPolicy"
REF_KEY = "Ref"
DELETION_POLICY_RETAIN = "Retain"

# change sets
IMPORT_CHANGE_SET_NAME = "ImportChangeSet"
CHANGE_SET_TYPE_IMPORT = "IMPORT"
CAPABILITY_NAMED_IAM = "CAPABILITY_NAMED_IAM"
WAITER_MAX_ATTEMPTS_REASON = "Max attempts exceeded"
NO_UPDATES_MESSAGE = "No updates are to be performed"
TEMPLATE_BODY_LIMIT = 51200

# stack instances
DETAILED_STATUS_FAILED = "FAILED"
DRIFT_STATUS_DRIFTED = "DRIFTED"
RESOURCE_DRIFT_IN_SYNC = "IN_SYNC"

# stack set operations
OPERATION_SUCCEEDED = "SUCCEEDED"
OPERATION_FAILED_STATUSES = ("FAILED", "STOPPED")
CALL_AS_VALUES = ("SELF", "DELEGATED_ADMIN")

# drift differences
DIFFERENCE_NOT_EQUAL = "NOT_EQUAL"
DIFFERENCE_ADD = "ADD"
DIFFERENCE_REMOVE = "REMOVE"

# cloud control request statuses
REQUEST_SUCCESS = "SUCCESS"
REQUEST_TERMINAL_FAILURES = ("FAILED", "CANCEL_COMPLETE", "CANCEL_IN_PROGRESS")

# assume role
ROLE_ARN_FORMAT = "arn:aws:iam::{account}:role/{role_name}"
SESSION_NAME_FORMAT = "stack-importer-{timestamp}"
DEFAULT_SESSION_DURATION = 3600
CREDENTIALS_REFRESH_MARGIN = 300

# iam errors
NO_SUCH_ENTITY = ("NoSuchEntity", "NoSuchEntityException")

# s3
S3_URL_FORMAT = "https://{bucket}.s3.{region}.amazonaws.com/{key}"
S3_KEY_BYTES = 32

DEFAULT_REGION = "us-east-1"
