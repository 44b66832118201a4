import os

from importer_utils import ImporterUtil, Logger, statics
from importer_utils.errors import ConfigurationError
from stackset_import.base_workflow import BaseWorkflow


class CreateImportTemplate(BaseWorkflow):
    """
    Turn a local template into an import template plus its ResourcesToImport manifest.

    Lookups run with the base credentials, or inside account when one is given together with a role name.
    """

    def __init__(self, aws_manager, template_file: str, output_dir: str = ".", account: str = None, **kwargs):
        super().__init__(aws_manager=aws_manager, **kwargs)
        if bool(account) != bool(self.role_name):
            raise ConfigurationError("--account and --role-name must be given together")
        self.template_file = template_file
        self.output_dir = output_dir
        self.account = account

    def lookup_manager(self):
        if self.account:
            return self.broker.assume(self.account, self.aws_manager.region)
        return self.aws_manager

    def start(self):
        data = ImporterUtil.read_file(self.template_file)
        plan = self.plan_builder(self.lookup_manager()).build_from_bytes(data)

        template_path = ImporterUtil.write_file(os.path.join(self.output_dir, statics.IMPORT_TEMPLATE_FILE),
                                                plan.template_body)
        manifest_path = ImporterUtil.write_file(os.path.join(self.output_dir, statics.RESOURCES_TO_IMPORT_FILE),
                                                plan.manifest_json())

        self.summary_data = {"template": template_path,
                             "resources_to_import": manifest_path,
                             "imported": plan.logical_names()}
        Logger.logger.success("Import template successfully created")
        return self.success()
