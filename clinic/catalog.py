"""
Static clinic catalogs: the time-slot grid, the service price list and
the health declaration questions.

These are configuration, not database rows. One instance of each is built at
import time and shared by every router and service that needs prices,
durations or slot labels.
"""
import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, Iterator, List, Optional, Tuple

from . import config

SLOT_MINUTES = 30


class TimeSlotCatalog:
    """Ordered grid of 30-minute half-open intervals over working hours"""

    def __init__(self, opens: str = "10:00", closes: str = "17:00", slot_minutes: int = SLOT_MINUTES):
        start = datetime.strptime(opens, "%H:%M")
        end = datetime.strptime(closes, "%H:%M")
        if end <= start:
            raise ValueError(f"Closing time {closes} must be after opening time {opens}")

        self.slot_minutes = slot_minutes
        labels = []
        step = timedelta(minutes=slot_minutes)
        current = start
        while current + step <= end:
            labels.append(f"{current:%H:%M} - {current + step:%H:%M}")
            current += step
        self._labels: Tuple[str, ...] = tuple(labels)
        self._index = {label: i for i, label in enumerate(self._labels)}

    @property
    def labels(self) -> List[str]:
        return list(self._labels)

    def __len__(self) -> int:
        return len(self._labels)

    def __iter__(self) -> Iterator[str]:
        return iter(self._labels)

    def __getitem__(self, i: int) -> str:
        return self._labels[i]

    def __contains__(self, label: object) -> bool:
        return label in self._index

    def index(self, label: Optional[str]) -> Optional[int]:
        """Position of a slot label, None when the label is not in the grid"""
        if label is None:
            return None
        return self._index.get(label.strip())

    def span(self, duration: Optional[int]) -> int:
        """Number of consecutive slots a booking of `duration` minutes occupies"""
        if not duration or duration <= 0:
            duration = self.slot_minutes
        return math.ceil(duration / self.slot_minutes)

    def start_time(self, label: str) -> str:
        return label.split("-")[0].strip()


@dataclass(frozen=True)
class ServiceOption:
    name: str
    price: int
    minutes: int


@dataclass(frozen=True)
class ServiceCategory:
    name: str
    options: Tuple[ServiceOption, ...]
    multi_visit: bool = False

    def option(self, name: str) -> Optional[ServiceOption]:
        for opt in self.options:
            if opt.name == name:
                return opt
        return None


def _category(name, options, multi_visit=False) -> ServiceCategory:
    return ServiceCategory(
        name=name,
        options=tuple(ServiceOption(n, p, m) for n, p, m in options),
        multi_visit=multi_visit,
    )


@dataclass(frozen=True)
class ServiceCatalog:
    """Price list of treatments grouped by category"""
    categories: Tuple[ServiceCategory, ...]
    _by_name: Dict[str, ServiceCategory] = field(default_factory=dict, compare=False, repr=False)

    def __post_init__(self):
        self._by_name.update({c.name: c for c in self.categories})

    def category(self, name: str) -> Optional[ServiceCategory]:
        return self._by_name.get(name)

    def find_option(self, category: str, option: str) -> Optional[ServiceOption]:
        cat = self.category(category)
        if cat is None:
            return None
        return cat.option(option)

    def is_multi_visit(self, category: str) -> bool:
        cat = self.category(category)
        return bool(cat and cat.multi_visit)

    def as_dicts(self) -> List[dict]:
        return [
            {
                "category": c.name,
                "multi_visit": c.multi_visit,
                "options": [{"name": o.name, "price": o.price, "minutes": o.minutes} for o in c.options],
            }
            for c in self.categories
        ]


SERVICES = ServiceCatalog(categories=(
    _category("Cleaning (LINIS)", [
        ("Mild to Average Deposit (Tartar)", 650, 30),
        ("Moderate to Heavy Deposit", 900, 60),
        ("Additional Stain Removal (Prophy Jet)", 300, 30),
    ]),
    _category("Filling (PASTA)", [
        ("Temporary", 400, 30),
        ("Permanent", 1150, 60),
    ]),
    _category("Tooth Extraction (BUNOT)", [
        ("Regular", 600, 30),
        ("Complicated", 1000, 60),
        ("Surgery", 5500, 60),
    ]),
    _category("Crown / Bridge (JACKET) - per unit", [
        ("Porcelain", 7000, 60),
        ("Plastic", 3000, 60),
        ("Temporary", 300, 30),
    ], multi_visit=True),
    _category("Complete Denture (Upper or Lower)", [
        ("Ordinary", 5000, 60),
        ("Lucitone", 7000, 60),
        ("Flexicryl", 16000, 60),
        ("Ivocap", 15000, 60),
        ("Porcelain Pontic", 10000, 60),
    ], multi_visit=True),
    _category("Orthodontics (BRACES)", [
        ("Conventional (Metal) - Full", 35000, 60),
        ("Conventional (Metal) - DP", 10000, 30),
        ("Ceramic - Full", 45000, 60),
        ("Ceramic - DP", 15000, 30),
        ("Self-ligating - Full", 55000, 60),
        ("Self-ligating - DP", 25000, 30),
        ("Upper OR Lower Only (Metal)", 20000, 60),
        ("Upper OR Lower DP", 8000, 30),
        ("Per Adjustment", 1000, 30),
    ], multi_visit=True),
    _category("Retainer", [
        ("Hawley Retainer (Plain)", 1500, 30),
        ("Invisible Retainer", 3500, 30),
        ("Soft Mouthguard", 3500, 30),
    ], multi_visit=True),
    _category("Partial Denture", [
        ("Ordinary", 3750, 60),
        ("Ordinary (1-3 teeth missing)", 2750, 30),
        ("Metal Framework (Uni)", 7000, 60),
        ("Metal Framework (Bila)", 10000, 60),
        ("Flexible", 10500, 60),
        ("Thermosense", 14000, 60),
        ("Combination Flexi-Metal", 13000, 60),
    ], multi_visit=True),
    _category("Porcelain Pontic on RPD (additional)", [
        ("Porcelain Pontic", 2500, 30),
    ]),
    _category("Whitening", [
        ("In-Office", 6000, 60),
    ]),
    _category("Veneers", [
        ("Ceramage", 11000, 60),
        ("E-max", 14000, 60),
        ("Zirconia", 16000, 60),
        ("Direct Composite", 2500, 30),
    ], multi_visit=True),
    _category("Root Canal Therapy", [
        ("Per Canal", 3500, 60),
    ]),
    _category("TMJ Therapy", [
        ("Splint", 7000, 60),
        ("Expander", 8000, 60),
        ("Bionator", 10000, 60),
        ("Combination Appliance (Phase 1)", 10000, 60),
        ("Per Adjustment", 1500, 30),
    ], multi_visit=True),
    _category("Denture Repair", [
        ("Denture Repair", 600, 30),
        ("Replacement Pontic (Plastic)", 300, 30),
    ]),
))

HEALTH_QUESTIONS = (
    ("q1", "Do you have a fever or temperature over 38°C?"),
    ("q2", "Have you experienced shortness of breath?"),
    ("q3", "Do you have a dry cough?"),
    ("q4", "Do you have runny nose?"),
    ("q5", "Have you recently lost or had a reduction in your sense of smell?"),
    ("q6", "Do you have sore throat?"),
    ("q7", "Do you have diarrhea?"),
    ("q8", "Do you have influenza-like symptoms (headache, aches and pains, rash on skin)?"),
    ("q9", "Do you have history of COVID-19 infection?"),
    ("q10", "Have you been in contact with someone who tested positive for COVID-19?"),
)


def missing_health_answers(answers: Dict[str, str]) -> List[str]:
    """Question ids without a yes/no answer"""
    return [
        qid for qid, _ in HEALTH_QUESTIONS
        if str(answers.get(qid, "")).strip().lower() not in ("yes", "no")
    ]


TIME_SLOTS = TimeSlotCatalog(config.CLINIC_OPENS, config.CLINIC_CLOSES)
