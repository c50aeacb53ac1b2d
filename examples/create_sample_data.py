"""Crée un instantané de démonstration pour PartLink (catalogues xlsx + snapshot.json)."""

import json
from pathlib import Path

import pandas as pd

DATA_DIR = Path(__file__).parent / "data"
DATA_DIR.mkdir(exist_ok=True)

store = pd.DataFrame({
    "id": ["s1", "s2", "s3", "s4", "s5", "s6"],
    "part_number": ["000-2112-73", "ABH14717", "WIX-51515", "GAT-K060842", "BLT3456", "GM 8036"],
    "description": ["Oil filter", "Brake hose", "Oil filter", "Serpentine belt", "Serpentine belt six rib", "Spark plug"],
    "cost": [10.0, 22.5, 6.1, 31.0, 18.0, 4.2],
    "category": ["Filters", "Brakes", "Filters", "Belts & Hoses", "Belts & Hoses", "Ignition"],
})

supplier = pd.DataFrame({
    "id": ["t1", "t2", "t3", "t4", "t5", "t6"],
    "part_number": ["000211273", "AUV14717", "FRAPH8A", "K060842", "BLT3450", "GM8036"],
    "line_code": [None, "AUV", "FRA", "GATES", "BLT", "GM"],
    "description": ["Oil filter", "Brake hose", "Oil filter", "Serpentine belt", "Serpentine belt six rib", "Spark plug"],
    "cost": [10.0, 23.0, 6.0, 30.5, 18.0, 4.2],
    "category": ["Filters", "Brakes", "Filters", "Belts & Hoses", "Belts & Hoses", "Ignition"],
    "subcategory": [None, None, None, "Serpentine", "Serpentine", None],
})

# NaN -> null dans le JSON
store_rows = store.astype(object).where(store.notna(), None).to_dict(orient="records")
supplier_rows = supplier.astype(object).where(supplier.notna(), None).to_dict(orient="records")

snapshot = {
    "store_records": store_rows,
    "supplier_records": supplier_rows,
    "rules": [
        {"rule_type": "interchange_mapping", "source_full_sku": "WIX-51515", "target_full_sku": "FRAPH8A"},
        {"rule_type": "vendor_action", "supplier_line_code": "GATES", "category_pattern": "Belts & Hoses",
         "subcategory_pattern": "Serpentine", "action": "LIFT"},
        {"rule_type": "vendor_action", "supplier_line_code": "GATES", "action": "CONTACT_VENDOR"},
        {"rule_type": "positive_map", "id": "MR000001", "store_part_number": "GAT-K060842",
         "supplier_part_number": "K060842"},
    ],
    "line_code_translations": [{"source_line_code": "ABH", "target_line_code": "AUV"}],
    "rejected_history": [{"store_part_number": "GM 8036", "supplier_part_number": "GM8036"}],
}

store.to_excel(DATA_DIR / "store.xlsx", index=False, engine="openpyxl")
supplier.to_excel(DATA_DIR / "supplier.xlsx", index=False, engine="openpyxl")
with open(DATA_DIR / "snapshot.json", "w", encoding="utf-8") as f:
    json.dump(snapshot, f, indent=2, ensure_ascii=False)
print(f"Fichiers créés dans {DATA_DIR}")
print(f"Lancer : partlink run --snapshot {DATA_DIR / 'snapshot.json'} --dry-run")
