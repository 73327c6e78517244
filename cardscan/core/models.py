from typing import List, Optional
from pydantic import BaseModel, Field

# --- API Models ---
# Mirror the JSON bodies of the card catalog/inventory service.

class ApiCard(BaseModel):
    id: str
    scryfall_id: Optional[str] = None
    name: str
    set_code: str = ""
    collector_number: str = ""
    image_uri: Optional[str] = None
    oracle_text: Optional[str] = None
    type_line: Optional[str] = None
    mana_cost: Optional[str] = None
    rarity: Optional[str] = None
    created_at: Optional[str] = None

class ScanRequest(BaseModel):
    card_name: Optional[str] = None
    set_code: Optional[str] = None
    collector_number: Optional[str] = None
    barcode: Optional[str] = None

    def payload(self) -> dict:
        """JSON body with unset identifying fields omitted."""
        return self.model_dump(exclude_none=True)

class BulkScanRequest(BaseModel):
    scans: List[ScanRequest] = []

    def payload(self) -> dict:
        return {"scans": [s.payload() for s in self.scans]}

class ScanResponse(BaseModel):
    success: bool = False
    card: Optional[ApiCard] = None
    error: Optional[str] = None

class BulkScanResponse(BaseModel):
    session_id: Optional[int] = None
    total_scanned: int = 0
    successful_scans: int = 0
    failed_scans: int = 0
    results: List[ScanResponse] = []

# --- Auth Models ---

class AuthRequest(BaseModel):
    device_id: str

class AuthResponse(BaseModel):
    user_id: str
    token: str

# --- Inventory Models ---

class InventoryItem(BaseModel):
    id: int
    user_id: str
    card_id: str
    quantity: int = 1
    added_at: Optional[str] = None
    card: Optional[ApiCard] = None

class InventoryResponse(BaseModel):
    inventory: List[InventoryItem] = []
    count: int = 0

class ErrorResponse(BaseModel):
    error: str
    message: Optional[str] = Field(None, description="Human readable detail, often equal to error")
