"""Requirements catalog: bundled data, resolution rules, and spreadsheet import."""

from competency_engine.catalog.catalog import (
    CatalogEntry,
    CatalogLoadError,
    RequirementsCatalog,
    SectionSpec,
    bundled_catalog_path,
    is_operating_list,
    load_catalog,
    normalize_catalog_name,
    operating_list_subspecialty,
    requirements_to_dict,
)
from competency_engine.catalog.importer import (
    CSV_COLUMNS,
    dump_catalog_yaml,
    import_catalog_csv,
    import_catalog_rows,
)

__all__ = [
    "CSV_COLUMNS",
    "CatalogEntry",
    "CatalogLoadError",
    "RequirementsCatalog",
    "SectionSpec",
    "bundled_catalog_path",
    "dump_catalog_yaml",
    "import_catalog_csv",
    "import_catalog_rows",
    "is_operating_list",
    "load_catalog",
    "normalize_catalog_name",
    "operating_list_subspecialty",
    "requirements_to_dict",
]
