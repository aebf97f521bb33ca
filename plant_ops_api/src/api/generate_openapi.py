import json
import os

from src.api.main import app

# Get the OpenAPI schema (note: all REST routes are under /api/v1)
openapi_schema = app.openapi()

# Ensure Reports tag metadata is present
tags = openapi_schema.get("tags", [])
if not any(t.get("name") == "Reports" for t in tags):
    tags.append({"name": "Reports", "description": "Production reconciliation report and CSV/Excel/PDF export."})
openapi_schema["tags"] = tags

# Write to file
output_dir = "interfaces"
os.makedirs(output_dir, exist_ok=True)
output_path = os.path.join(output_dir, "openapi.json")

with open(output_path, "w") as f:
    json.dump(openapi_schema, f, indent=2)
