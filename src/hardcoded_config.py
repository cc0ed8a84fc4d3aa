from dataclasses import dataclass

@dataclass
class MetadataHardcodedConfig:
  DOCUMENT_LIBRARY_TEMPLATE_ID: int
  FILE_LEAF_REF_FIELD: str
  LOOKUP_SHOW_FIELD: str
  NO_ITEM_ID: int
  DEFAULT_AMBIGUITY_POLICY: str
  ROUTER_PREFIX: str


METADATA_HARDCODED_CONFIG = MetadataHardcodedConfig(
  # https://learn.microsoft.com/en-us/previous-versions/office/sharepoint-csom/ee541191(v=office.15) - DocumentLibrary = 101
  DOCUMENT_LIBRARY_TEMPLATE_ID=101
  ,FILE_LEAF_REF_FIELD="FileLeafRef"
  ,LOOKUP_SHOW_FIELD="Title"
  ,NO_ITEM_ID=0
  # "strict" = any match count other than 1 is ambiguous; "legacy" = only 0 or more than 2 matches are ambiguous
  ,DEFAULT_AMBIGUITY_POLICY="strict"
  ,ROUTER_PREFIX="/v2"
)
