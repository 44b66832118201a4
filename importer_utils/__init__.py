from .importer_logger import Logger
from .importer_utilities import ImporterUtil
from . import statics
