# encoding: utf-8
import logging
import os
import sys
from logging import DEBUG
from time import gmtime, strftime

import colorlog

SUCCESS = 21
logging.addLevelName(SUCCESS, 'SUCCESS')


class OverridePythonLogger(logging.Logger):
    def success(self, msg, *args, **kwargs):
        """
        Log 'msg % args' with severity 'SUCCESS'.

        Used for the status line printed after a repair step completes.
        """
        if self.isEnabledFor(SUCCESS):
            self._log(SUCCESS, msg, args, **kwargs)


class Logger(object):
    logger = OverridePythonLogger("stackset_importer")
    formatter = None

    @staticmethod
    def set_logger(logging_level=DEBUG, log_dir: str = None, name: str = ""):
        Logger.formatter = Logger.set_formatter()
        Logger.logger.setLevel(logging_level)
        if not log_dir:
            return

        os.makedirs(log_dir, exist_ok=True)
        file_name = os.path.join(log_dir, '{}{}.log'.format(name, strftime("%Y-%m-%d_%H-%M-%S", gmtime())))

        file_log_handler = logging.FileHandler(file_name)
        file_log_handler.setLevel(DEBUG)
        file_log_handler.setFormatter(logging.Formatter(Logger.log_format(), Logger.date_format()))
        Logger.logger.addHandler(file_log_handler)

    @staticmethod
    def add_stream(stream=sys.stderr, level=logging.ERROR):
        s = logging.StreamHandler(stream)
        s.setLevel(level)
        s.setFormatter(Logger.formatter or Logger.set_formatter())
        Logger.logger.addHandler(s)
        return s

    @staticmethod
    def log_format():
        return '%(levelname)-8s %(asctime)16s %(filename)s:%(lineno)d %(funcName)16s: %(message)-16s'

    @staticmethod
    def date_format():
        return '%H:%M:%S %d-%m-%Y'

    @staticmethod
    def set_formatter():
        # nice output format
        if os.isatty(2):
            return colorlog.ColoredFormatter('%(log_color)s' + Logger.log_format(), Logger.date_format(),
                                             log_colors={'DEBUG': 'reset', 'INFO': 'cyan',
                                                         'WARNING': 'bold_yellow', 'ERROR': 'bold_red',
                                                         'CRITICAL': 'bold_red', 'SUCCESS': 'green'})
        return logging.Formatter(Logger.log_format(), Logger.date_format())

    @staticmethod
    def get_file_location():
        for handler in Logger.logger.handlers:
            if isinstance(handler, logging.FileHandler):
                return handler.baseFilename
        return None
