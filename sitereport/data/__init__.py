from sitereport.data.glossary import STT_PROMPT_TR
from sitereport.data.taxonomy import TAXONOMY, iter_work_items, render_taxonomy, work_item_name

__all__ = ["STT_PROMPT_TR", "TAXONOMY", "iter_work_items", "render_taxonomy", "work_item_name"]
