import logging
import sys

# Configure logging
logger = logging.getLogger("neuronnook")
logger.setLevel(logging.INFO)

if not logger.handlers:
    handler = logging.StreamHandler(sys.stdout)
    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    handler.setFormatter(formatter)
    logger.addHandler(handler)

def configure_logging(level: str):
    logger.setLevel(level.upper())

def get_logger(name: str):
    return logger.getChild(name)
