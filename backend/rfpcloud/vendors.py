# vendors.py
# Vendor records. The normalised email address is the identity key.

import logging
from typing import List, Optional

from .errors import DuplicateError, NotFoundError
from .models import Vendor, VendorCreate, VendorUpdate, normalize_email
from .storage import JsonStorage

log = logging.getLogger("rfpcloud.vendors")


class VendorService:
    def __init__(self, storage: JsonStorage):
        self.storage = storage

    def create_vendor(self, body: VendorCreate) -> Vendor:
        email = normalize_email(body.email)
        if self.get_vendor_by_email(email):
            raise DuplicateError(f"Vendor with email {email} already exists")
        vendor = Vendor(name=body.name.strip(), email=email, notes=body.notes)
        self.storage.insert("vendors", vendor.model_dump(mode="json"))
        log.info("Created vendor %s <%s>", vendor.name, vendor.email)
        return vendor

    def get_vendor(self, vendor_id: str) -> Vendor:
        rec = self.storage.get("vendors", vendor_id)
        if not rec:
            raise NotFoundError("Vendor not found")
        return Vendor.model_validate(rec)

    def get_vendor_by_email(self, email: str) -> Optional[Vendor]:
        rec = self.storage.find_one("vendors", email=normalize_email(email))
        return Vendor.model_validate(rec) if rec else None

    def list_vendors(self) -> List[Vendor]:
        rows = sorted(self.storage.all("vendors"), key=lambda v: v.get("created_at", ""), reverse=True)
        return [Vendor.model_validate(v) for v in rows]

    def update_vendor(self, vendor_id: str, body: VendorUpdate) -> Vendor:
        self.get_vendor(vendor_id)
        fields = body.model_dump(exclude_unset=True, exclude_none=True)
        if "email" in fields:
            fields["email"] = normalize_email(fields["email"])
            taken = self.storage.find("vendors", predicate=lambda v: v["id"] != vendor_id,
                                      email=fields["email"])
            if taken:
                raise DuplicateError(f"Email {fields['email']} is already taken by another vendor")
        rec = self.storage.update("vendors", vendor_id, fields)
        return Vendor.model_validate(rec)

    def delete_vendor(self, vendor_id: str) -> None:
        """Removes the vendor together with its proposals and RFP links."""
        self.get_vendor(vendor_id)
        n = self.storage.delete_where("proposals", vendor_id=vendor_id)
        self.storage.delete_where("rfp_vendors", vendor_id=vendor_id)
        self.storage.delete("vendors", vendor_id)
        log.info("Deleted vendor %s (%d proposals)", vendor_id, n)

    def search_vendors(self, query: str) -> List[Vendor]:
        q = query.strip().lower()
        rows = self.storage.find("vendors", predicate=lambda v: q in v["name"].lower() or q in v["email"])
        return [Vendor.model_validate(v) for v in sorted(rows, key=lambda v: v["name"].lower())]
