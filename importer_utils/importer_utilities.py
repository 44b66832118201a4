import json
import os
import secrets
import threading

from importer_utils import statics
from importer_utils.errors import ConfigurationError, OperationCancelled
from importer_utils.importer_logger import Logger


class ImporterUtil(object):

    @staticmethod
    def get_arg_from_dict(dict_obj: dict, arg: str, default=None):
        return dict_obj[arg] if arg in dict_obj and dict_obj[arg] is not None else default

    @staticmethod
    def read_file(file_path: str):
        try:
            with open(file_path, 'rb') as f:
                return f.read()
        except OSError as e:
            raise ConfigurationError("can not read {}: {}".format(file_path, e.strerror or e)) from e

    @staticmethod
    def write_file(file_path: str, data, mode: int = statics.OUTPUT_FILE_MODE):
        """
        Write data to file_path and set its permission bits.

        :param file_path: destination file, created or truncated
        :param data: str or bytes
        :param mode: permission bits of the written file
        """
        if isinstance(data, str):
            data = data.encode("utf-8")
        dir_name = os.path.dirname(file_path)
        if dir_name:
            os.makedirs(dir_name, exist_ok=True)
        with open(file_path, 'wb') as f:
            f.write(data)
        os.chmod(file_path, mode)
        Logger.logger.debug("{} written, {} bytes".format(file_path, len(data)))
        return file_path

    @staticmethod
    def json_dumps(obj, indent: int = None):
        return json.dumps(obj, indent=indent)

    @staticmethod
    def random_object_key(n_bytes: int = statics.S3_KEY_BYTES):
        return secrets.token_hex(n_bytes)

    @staticmethod
    def extract_stack_name(stack_id: str):
        """
        arn:aws:cloudformation:<region>:<account>:stack/<name>/<uuid> -> <name>
        """
        parts = stack_id.split("/")
        if len(parts) < 2:
            return ""
        return parts[1]

    @staticmethod
    def check_cancelled(stop_event: threading.Event = None):
        if stop_event is not None and stop_event.is_set():
            raise OperationCancelled("operation cancelled")

    @staticmethod
    def sleep(delay: float, stop_event: threading.Event = None):
        """
        Sleep for delay seconds, waking up early and raising OperationCancelled when stop_event is set.
        """
        if stop_event is None:
            stop_event = threading.Event()
        if stop_event.wait(delay):
            raise OperationCancelled("operation cancelled")
