from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Dict, Optional

@dataclass(frozen=True)
class Event:
    title: str
    start_date: str             # host-formatted, fixed width so it sorts as a string
    end_date: str
    color: str                  # "#RRGGBB"
    href: str
    icon: str
    notes: Optional[str] = None
    is_all_day: bool = False
    is_point_in_time: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "startDate": self.start_date,
            "endDate": self.end_date,
            "color": self.color,
            "notes": self.notes,
            "icon": self.icon,
            "isAllDay": self.is_all_day,
            "isPointInTime": self.is_point_in_time,
            "href": self.href,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Event":
        return cls(
            title=str(data.get("title", "")),
            start_date=str(data.get("startDate", "")),
            end_date=str(data.get("endDate", "")),
            color=str(data.get("color", "")),
            href=str(data.get("href", "")),
            icon=str(data.get("icon", "")),
            notes=data.get("notes"),
            is_all_day=bool(data.get("isAllDay", False)),
            is_point_in_time=bool(data.get("isPointInTime", True)),
        )
