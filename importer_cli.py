#!/usr/bin/env python
import argparse
import logging
import signal
import sys
import threading
from logging import DEBUG, ERROR

from configurations.settings import load_settings
from importer_utils import Logger, statics
from importer_utils.errors import ConfigurationError
from import_driver import (CREATE_IMPORT_TEMPLATE, FIX_STACKSET_DRIFT, FIX_STACKSET_STACK_INSTANCES,
                           ImportDriver)

ROLE_NAME_REQUIRED = "You must specify --role-name to assume into each account"


def input_parser(argv=None):
    # options shared by every command
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--region", default=None, dest="region",
                        help="region of the management account clients. default: AWS_REGION or us-east-1")
    common.add_argument("--profile", default=None, dest="profile", help="AWS named profile for the base credentials")
    common.add_argument("--call-as", choices=list(statics.CALL_AS_VALUES), default=None, dest="call_as",
                        help="CallAs for StackSet calls, DELEGATED_ADMIN when run from a delegated administrator")
    common.add_argument("--logger", choices=["DEBUG", "INFO", "WARNING", "ERROR"], help="logger level",
                        default="INFO", dest="logger_level")
    common.add_argument("--log-dir", default=None, dest="log_dir", help="also write a debug log file in this dir")

    parser = argparse.ArgumentParser("stackset-importer",
                                     description="Repair CloudFormation StackSet instances by importing existing resources")
    subparsers = parser.add_subparsers(dest="command", metavar="command")
    subparsers.required = True

    create = subparsers.add_parser(CREATE_IMPORT_TEMPLATE, parents=[common], help="Create import template")
    create.add_argument("--cf-template", required=True, dest="template_file", help="CloudFormation template file")
    create.add_argument("--output-dir", default=".", dest="output_dir",
                        help="directory for {} and {}. default: .".format(statics.IMPORT_TEMPLATE_FILE,
                                                                          statics.RESOURCES_TO_IMPORT_FILE))
    create.add_argument("--account", default=None, dest="account", help="look resources up in this account")
    create.add_argument("--role-name", default=None, dest="role_name", help="Role name to assume into --account")

    fix = subparsers.add_parser(FIX_STACKSET_STACK_INSTANCES, parents=[common],
                                help="Fixes a stack set stack instances")
    fix.add_argument("--stack-set-name", required=True, dest="stackset_name", help="StackSet Name")
    fix.add_argument("--role-name", default="", dest="role_name", help="Role name to assume into each account")
    fix.add_argument("--s3-bucket", default=None, dest="s3_bucket", help="Bucket to place templates")
    fix.add_argument("--continue-on-error", action="store_true", default=False, dest="continue_on_error",
                     help="record a failing stack instance and go on with the next one")

    drift = subparsers.add_parser(FIX_STACKSET_DRIFT, parents=[common], help="Fixes stack set drift")
    drift.add_argument("--stack-set-name", required=True, dest="stackset_name", help="StackSet Name")
    drift.add_argument("--role-name", default="", dest="role_name", help="Role name to assume into each account")

    return parser.parse_args(argv)


def setup_logger(level=DEBUG, log_dir: str = None):
    # set logger
    Logger.set_logger(logging_level=level, log_dir=log_dir)

    # errors to stderr, everything else to stdout
    Logger.add_stream(stream=sys.stderr, level=ERROR)
    out_handler = Logger.add_stream(stream=sys.stdout, level=level)
    out_handler.addFilter(lambda record: record.levelno < logging.ERROR)

    if Logger.get_file_location():
        Logger.logger.debug('Logger file location: {}'.format(Logger.get_file_location()))


def install_signal_handlers(stop_event: threading.Event):
    def handler(signum, frame):
        if stop_event.is_set():
            raise KeyboardInterrupt
        Logger.logger.warning("Stopping after the current cloud call, signal again to abort now")
        stop_event.set()

    signal.signal(signal.SIGINT, handler)
    signal.signal(signal.SIGTERM, handler)


def main(argv=None):

    # parse input
    args = input_parser(argv)
    setup_logger(level=args.logger_level, log_dir=args.log_dir)

    if args.command in (FIX_STACKSET_STACK_INSTANCES, FIX_STACKSET_DRIFT) and not args.role_name:
        print(ROLE_NAME_REQUIRED)
        return 1

    try:
        settings = load_settings(region=args.region, profile=args.profile, call_as=args.call_as)
    except ConfigurationError as e:
        Logger.logger.error(e)
        return 1

    stop_event = threading.Event()
    install_signal_handlers(stop_event)

    t = ImportDriver(settings=settings, stop_event=stop_event, command=args.command,
                     **ImportDriver.workflow_args(vars(args)))
    return t.main()


if __name__ == "__main__":
    sys.exit(main())
