"""
Shared logical element and keyword declarations.

Candidate chains are ordered most specific first; a bare tag selector is only
ever the last resort. Scenarios reference these by name and may override or
extend them locally.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from sitecheck.keywords import KeywordSet, compile_keyword_set
from sitecheck.locators import LogicalElement, compile_element


DEFAULT_ELEMENTS: dict[str, Any] = {
    "primary-heading": [
        "main h1",
        "article h1",
        ".entry-title",
        ".page-title",
        "h1",
    ],
    "site-title": ["h1", ".site-title", ".brand", ".logo-text"],
    "navigation": [
        {"engine": "role", "role": "navigation"},
        "nav",
        ".nav",
        ".navigation",
        ".main-nav",
        ".menu",
    ],
    "nav-link": [
        {"engine": "role", "role": "link", "name": "{text}", "exact": False},
        'nav a:has-text("{text}")',
        '.menu a:has-text("{text}")',
        '.navigation a:has-text("{text}")',
        'header a:has-text("{text}")',
        '[role="navigation"] a:has-text("{text}")',
    ],
    "logo": {
        "candidates": [
            'img[alt*="logo" i]',
            ".logo img",
            ".btMainLogo",
            'img[alt="pinoypetplan.com"]',
            ".site-logo img",
            ".brand img",
            "header img",
        ],
        "attribute": "src",
    },
    "hero": [".hero", ".hero-section", ".main-banner", ".banner", "section:first-of-type"],
    "footer": {
        "candidates": ["footer", ".footer", '[role="contentinfo"]'],
        "min_text_length": 1,
    },
    "footer-link": [
        'footer a:has-text("{text}")',
        '.footer a:has-text("{text}")',
        '[role="contentinfo"] a:has-text("{text}")',
    ],
    "social-link": {
        "candidates": [
            'a[href*="{platform}"]',
            '.social a[class*="{platform}"]',
            'a[class*="{platform}"]',
            'a[aria-label*="{platform}" i]',
        ],
        "attribute": "href",
    },
    "mobile-menu-toggle": [
        {"engine": "role", "role": "button", "name_regex": r"menu|navigation"},
        ".hamburger",
        ".menu-toggle",
        ".mobile-menu-toggle",
        ".nav-toggle",
        '[aria-label*="menu" i]',
    ],
    "search-input": [
        {"engine": "role", "role": "searchbox"},
        'input[type="search"]',
        'input[placeholder*="search" i]',
        'input[name="s"]',
        ".search-input",
        "#search",
        '[class*="search"] input',
    ],
    "contact-form": ["form.contact-form", ".wpcf7 form", ".contact-form", '[role="form"]', "form"],
    "form-name-field": [
        'input[name*="name" i]',
        'input[id*="name" i]',
        'input[placeholder*="name" i]',
    ],
    "form-email-field": ['input[type="email"]', 'input[name*="email" i]', 'input[id*="email" i]'],
    "form-message-field": ["textarea", 'input[name*="message" i]', 'input[id*="message" i]'],
    "form-submit": [
        {"engine": "role", "role": "button", "name_regex": r"submit|send"},
        'button[type="submit"]',
        'input[type="submit"]',
        ".submit-btn",
    ],
    "breadcrumbs": [
        {"engine": "role", "role": "navigation", "name_regex": r"breadcrumb"},
        ".breadcrumbs",
        ".breadcrumb",
        '[class*="breadcrumb"]',
    ],
    "article-list": ["main article", "article", ".post", ".blog-post", ".article"],
    "article-title": [
        "article .entry-title",
        "article h2 a",
        "article h2",
        "article h3",
        ".post-title",
        ".article-title",
    ],
    "article-date": ["article time", "time", ".post-date", ".published", ".date"],
    "article-image": {
        "candidates": [".wp-post-image", ".featured-image img", "article img", "main img"],
        "attribute": "src",
    },
    "continue-reading": [
        {"engine": "role", "role": "link", "name_regex": r"continue\s*reading|read\s*more"},
        'a:has-text("CONTINUE READING")',
        'a:has-text("Read More")',
    ],
    "pagination": [".pagination", ".nav-links", ".page-numbers"],
    "sidebar": [".sidebar", ".widget-area", "aside"],
    "category-link": ['a[href*="/category/{slug}"]'],
    "section-heading": [
        {"engine": "role", "role": "heading", "name": "{text}"},
        'h2:has-text("{text}")',
        'h3:has-text("{text}")',
        'h4:has-text("{text}")',
    ],
    "text-block": [
        {"engine": "text", "text": "{text}"},
    ],
    "meta-description": {
        "candidates": ['meta[name="description"]'],
        "attribute": "content",
    },
    "meta-tag": {
        "candidates": ['meta[property="{property}"]', 'meta[name="{property}"]'],
        "attribute": "content",
    },
    "phone-link": {"candidates": ['a[href^="tel:"]'], "attribute": "href", "require_visible": False},
    "email-link": {"candidates": ['a[href^="mailto:"]'], "attribute": "href", "require_visible": False},
}


DEFAULT_KEYWORD_SETS: dict[str, Any] = {
    "home-key-phrases": [
        "Peace of Mind for Every Step",
        "At Pinoy Pet Plan, we believe that every pet deserves a happy and healthy life",
    ],
    "filipino-terms": ["alagang hayop", "matalinong pag-aalaga", "magkaisa"],
    "filipino-about-terms": [
        "malasakit",
        "pagmamahal",
        "tiwala",
        "dedikasyon",
        "serbisyo",
        "kalidad",
        "pamilya",
        "kapamilya",
    ],
    "about-sections": [
        "Our Story",
        "Our Mission",
        "Our Vision",
        "Our Values",
        "Our Team",
        "Leadership",
        "Company History",
        "Why Choose Us",
    ],
    "about-keywords": [
        "experience",
        "dedicated",
        "passionate",
        "professional",
        "expertise",
        "commitment",
        "trusted",
        "reliable",
    ],
    "team-roles": [
        "CEO",
        "Founder",
        "Director",
        "Manager",
        "Veterinarian",
        "Pet Care Specialist",
        "Customer Service",
        "Operations",
    ],
    "company-info": [
        "established",
        "founded",
        "years of experience",
        "since",
        "serving",
        "customers",
        "clients",
        "pets helped",
    ],
    "pet-care-terms": ["pet", "care", "health", "dog", "cat"],
    "footer-copy": {
        "keywords": [r"©|copyright", r"all rights reserved", r"pinoy\s*pet\s*plan"],
        "regex": True,
    },
    "contact-details": {
        "keywords": [
            r"\+63[0-9\s\-()]{10,}|0[0-9]{2,3}[\s\-]?[0-9]{3,4}[\s\-]?[0-9]{4}",
            r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}",
        ],
        "regex": True,
    },
}


@dataclass
class Catalog:
    """Defaults plus per-scenario overrides; compiled lazily and cached per name."""

    elements: dict[str, Any] = field(default_factory=lambda: dict(DEFAULT_ELEMENTS))
    keyword_sets: dict[str, Any] = field(default_factory=lambda: dict(DEFAULT_KEYWORD_SETS))
    _compiled_elements: dict[str, LogicalElement] = field(default_factory=dict, repr=False)
    _compiled_sets: dict[str, KeywordSet] = field(default_factory=dict, repr=False)

    def with_overrides(self, elements: dict[str, Any] | None = None, keyword_sets: dict[str, Any] | None = None) -> Catalog:
        merged_elements = dict(self.elements)
        merged_elements.update(elements or {})
        merged_sets = dict(self.keyword_sets)
        merged_sets.update(keyword_sets or {})
        return Catalog(elements=merged_elements, keyword_sets=merged_sets)

    def has_element(self, name: str) -> bool:
        return name in self.elements

    def has_keyword_set(self, name: str) -> bool:
        return name in self.keyword_sets

    def element(self, name: str, params: dict[str, str] | None = None) -> LogicalElement:
        if name not in self.elements:
            raise KeyError(f"unknown_element: {name}")
        if name not in self._compiled_elements:
            self._compiled_elements[name] = compile_element(name, self.elements[name])
        compiled = self._compiled_elements[name]
        return compiled.bind(**params) if params else compiled

    def keyword_set(self, name: str) -> KeywordSet:
        if name not in self.keyword_sets:
            raise KeyError(f"unknown_keyword_set: {name}")
        if name not in self._compiled_sets:
            self._compiled_sets[name] = compile_keyword_set(name, self.keyword_sets[name])
        return self._compiled_sets[name]


def default_catalog() -> Catalog:
    return Catalog()
