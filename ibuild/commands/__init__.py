from .build import build, archive, install, test
from .clean import clean
