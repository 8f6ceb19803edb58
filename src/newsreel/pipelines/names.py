"""Registered program names."""

from __future__ import annotations

from enum import StrEnum


class ProgramName(StrEnum):
    NEWS_REFRESH = "news_refresh"
    NEWS_SCRAPER = "news_scraper"
    ARTICLE_SCRAPER = "article_scraper"
    ARTICLE_RESCRAPE = "article_rescrape"
    VIDEO_SELECTION = "video_selection"
    SCRIPT_GENERATION = "script_generation"
    ASSET_GENERATION = "asset_generation"
    VIDEO_RENDER = "video_render"
    VIDEO_PUBLISH = "video_publish"
