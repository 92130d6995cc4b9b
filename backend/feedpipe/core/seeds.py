"""
Seed list of Zimbabwean news sites for bulk import.

Entries carry only the site URL; feed URLs are found by discovery when
imported with validation, otherwise the sources are stored as pending.
"""

from feedpipe.models.domain import SeedSource

ZIMBABWE_NEWS_SOURCES: tuple[SeedSource, ...] = (
    # Major media houses
    SeedSource(name="The Herald", url="https://www.herald.co.zw", category="general", priority=5),
    SeedSource(name="NewsDay", url="https://www.newsday.co.zw", category="general", priority=5),
    SeedSource(name="The Chronicle", url="https://www.chronicle.co.zw", category="general", priority=5),

    # Online publications
    SeedSource(name="ZimLive", url="https://www.zimlive.com", category="general", priority=4),
    SeedSource(name="New Zimbabwe", url="https://www.newzimbabwe.com", category="general", priority=4),
    SeedSource(name="ZimEye", url="https://zimeye.net", category="general", priority=4),
    SeedSource(name="263Chat", url="https://263chat.com", category="general", priority=4),

    # Business & finance
    SeedSource(name="Financial Gazette", url="https://fingaz.co.zw", category="finance_investing", priority=4),
    SeedSource(name="Business Weekly", url="https://businessweekly.co.zw", category="finance_investing", priority=4),
    SeedSource(name="Zimbabwe Independent", url="https://www.theindependent.co.zw", category="finance_investing", priority=4),

    # Technology
    SeedSource(name="Techzim", url="https://www.techzim.co.zw", category="tech_gadgets", priority=4),
    SeedSource(name="TechnoMag", url="https://technomag.co.zw", category="tech_gadgets", priority=3),

    # Regional
    SeedSource(name="Manica Post", url="https://manicapost.co.zw", category="local_news", priority=3),
    SeedSource(name="Southern Eye", url="https://southerneye.co.zw", category="local_news", priority=3),

    # Broadcasting
    SeedSource(name="Star FM", url="https://www.starfm.co.zw", category="entertainment", priority=3),
    SeedSource(name="ZBC News Online", url="https://www.zbc.co.zw", category="general", priority=4),

    # Sports
    SeedSource(name="Soccer24 Zimbabwe", url="https://soccer24.co.zw", category="sports_athletics", priority=3),
    SeedSource(name="The Sports Hub", url="https://sportshub.co.zw", category="sports_athletics", priority=3),

    # Health & education
    SeedSource(name="Health Times", url="https://healthtimes.co.zw", category="health", priority=2),
    SeedSource(name="Education Matters", url="https://educationmatters.co.zw", category="education", priority=2),
)
