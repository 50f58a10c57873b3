# sources/__init__.py
from . import fandom
from . import gemini

NAME_LIST = fandom.fetch_master_list
LOOKUP = fandom.fetch_item_details
RECOGNIZER = gemini.identify
