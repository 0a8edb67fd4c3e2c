"""Keyword-weighted topic classification for answer units.

Each topic scores one point per distinct keyword present in the text
(case-insensitive substring match). The highest score wins, ties go to the
topic listed first, and no matches at all yields GENERAL_TOPIC.
"""

from types import MappingProxyType
from typing import Mapping, Tuple

GENERAL_TOPIC = "General Topic"

TOPIC_KEYWORDS: Mapping[str, Tuple[str, ...]] = MappingProxyType({
    "Cyber Security": ("cyber", "security", "threat", "malware", "virus", "firewall", "encryption", "password", "authentication", "breach"),
    "Safety Hazards": ("safety", "hazard", "risk", "danger", "accident", "injury", "precaution", "protection", "emergency"),
    "Storage Devices": ("storage", "hard drive", "ssd", "hdd", "usb", "memory", "disk", "flash", "optical", "dvd", "cd"),
    "Computer Components": ("cpu", "processor", "motherboard", "ram", "memory", "graphics", "power supply", "component", "hardware"),
    "Basic Terminologies": ("definition", "term", "meaning", "concept", "terminology", "explain", "describe"),
    "Memory Types": ("ram", "rom", "memory", "volatile", "non-volatile", "cache", "buffer", "primary", "secondary"),
    "BIOS": ("bios", "firmware", "boot", "startup", "system", "update", "configuration", "setup"),
    "Hard Disk Drive": ("hard disk", "hdd", "drive", "storage", "disk", "platter", "sector", "track"),
    "Hardware Performance": ("performance", "speed", "efficiency", "benchmark", "optimization", "factor", "impact"),
    "AC-DC Converters": ("ac", "dc", "converter", "power", "supply", "voltage", "current", "electrical"),
    "Internet Collaboration": ("internet", "collaboration", "secure", "online", "network", "communication", "sharing"),
    "Server Networks": ("server", "network", "functionality", "client", "service", "protocol", "connection"),
    "Input Output Devices": ("input", "output", "device", "keyboard", "mouse", "monitor", "printer", "scanner"),
    "Printer Management": ("printer", "install", "manage", "driver", "print", "queue", "configuration"),
    "Mobile Devices": ("mobile", "smartphone", "tablet", "device", "portable", "wireless", "cellular"),
    "Preventative Maintenance": ("maintenance", "preventative", "care", "cleaning", "service", "upkeep", "regular"),
    "Troubleshooting": ("troubleshoot", "problem", "issue", "fix", "repair", "diagnose", "solve", "error"),
    "Operating Systems": ("operating system", "os", "windows", "linux", "mac", "system", "platform"),
    "File Management": ("file", "folder", "directory", "manage", "organize", "save", "delete", "copy"),
    "Software Utilities": ("software", "utility", "tool", "program", "application", "optimization", "system"),
    "System Restore": ("restore", "backup", "recovery", "point", "system", "rollback", "previous"),
    "Recovery Processes": ("recovery", "restore", "backup", "data", "system", "process", "procedure"),
})


def topic_keywords(topic: str) -> Tuple[str, ...]:
    """Keywords for a topic; empty for GENERAL_TOPIC or unknown topics."""
    return TOPIC_KEYWORDS.get(topic, ())


def count_keyword_matches(text: str, keywords: Tuple[str, ...]) -> int:
    """Number of distinct keywords present in text (case-insensitive)."""
    lowered = text.lower()
    return sum(1 for keyword in keywords if keyword.lower() in lowered)


def classify_topic(text: str) -> str:
    """Return the best matching topic for an answer unit."""
    best_topic = GENERAL_TOPIC
    best_score = 0

    for topic, keywords in TOPIC_KEYWORDS.items():
        score = count_keyword_matches(text, keywords)
        if score > best_score:
            best_score = score
            best_topic = topic

    return best_topic
