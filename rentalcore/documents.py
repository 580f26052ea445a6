# Contract document generation.
# Renders a plain HTML lease summary to DOCUMENTS_DIR and returns the public URL path for it.
from __future__ import annotations

import logging
import os
import time
from html import escape
from pathlib import Path
from typing import Optional

from . import models
from .clock import as_utc

DOCUMENTS_URL_PREFIX = "/uploads/documents"

logger = logging.getLogger("rentalcore.documents")

_TEMPLATE = """<!DOCTYPE html>
<html lang="en">
<head><meta charset="utf-8"><title>Lease contract #{contract_id}</title></head>
<body>
<h1>Lease contract #{contract_id}</h1>
<h2>Property</h2>
<p>{property_name} ({property_type})</p>
<h2>Owner</h2>
<p>{owner_name} &lt;{owner_email}&gt;</p>
<h2>Tenant</h2>
<p>{tenant_name}, national id {tenant_national_id}</p>
<h2>Terms</h2>
<ul>
<li>Start: {start_date}</li>
<li>End: {end_date}</li>
<li>Rent: {price}, paid {frequency}</li>
</ul>
</body>
</html>
"""


class ContractDocumentGenerator:
    def __init__(self, output_dir: Optional[str] = None) -> None:
        self.output_dir = Path(output_dir or os.getenv("DOCUMENTS_DIR", "./uploads/documents"))

    def generate(
        self,
        contract: models.Contract,
        property_: models.Property,
        tenant: models.Tenant,
        owner: Optional[models.User],
    ) -> str:
        self.output_dir.mkdir(parents=True, exist_ok=True)
        filename = f"contract_{contract.id}_{time.time_ns()}.html"
        html = _TEMPLATE.format(
            contract_id=contract.id,
            property_name=escape(property_.name),
            property_type=escape(property_.property_type or ""),
            owner_name=escape(f"{owner.first_name} {owner.last_name}".strip()) if owner else "N/A",
            owner_email=escape(owner.email) if owner else "N/A",
            tenant_name=escape(f"{tenant.first_name} {tenant.last_name}"),
            tenant_national_id=escape(tenant.national_id),
            start_date=as_utc(contract.start_date).date().isoformat(),
            end_date=as_utc(contract.end_date).date().isoformat(),
            price=f"{contract.price:,.2f}",
            frequency=escape(contract.payment_frequency.lower().replace("_", "-")),
        )
        (self.output_dir / filename).write_text(html, encoding="utf-8")
        return f"{DOCUMENTS_URL_PREFIX}/{filename}"

    def discard(self, url: Optional[str]) -> None:
        """Remove the file behind a URL returned by `generate`. Foreign or missing files are ignored."""
        if not url or not url.startswith(f"{DOCUMENTS_URL_PREFIX}/"):
            return
        path = self.output_dir / Path(url).name
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            logger.warning("could not remove contract document %s: %s", path, exc)
