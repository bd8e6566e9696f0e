from dataclasses import dataclass
from typing import Optional

@dataclass
class Shop:
    """A shop record as stored in the database and cached as JSON."""
    id: Optional[int] = None
    name: Optional[str] = None
    type_id: Optional[int] = None
    address: Optional[str] = None
    area: Optional[str] = None
    avg_price: Optional[int] = None
    score: Optional[int] = None
    open_hours: Optional[str] = None
