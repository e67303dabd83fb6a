#!/usr/bin/env python3
"""
Theme Catalog
Fixed color palettes for SharePoint tenant themes.

Each palette maps the Fluent theme slot names SharePoint understands to hex
colors. Light palettes share the standard neutral ramp; the two dark
palettes carry their own.
"""

import json
from dataclasses import dataclass
from typing import Dict, List

from loguru import logger

DEFAULT_THEME = "Green"

# Neutral ramp used by every light palette
_LIGHT_NEUTRALS = {
    "neutralLighterAlt": "#faf9f8",
    "neutralLighter": "#f3f2f1",
    "neutralLight": "#edebe9",
    "neutralQuaternaryAlt": "#e1dfdd",
    "neutralQuaternary": "#d0d0d0",
    "neutralTertiaryAlt": "#c8c6c4",
    "neutralTertiary": "#a19f9d",
    "neutralSecondaryAlt": "#8a8886",
    "neutralSecondary": "#605e5c",
    "neutralPrimaryAlt": "#3b3a39",
    "neutralPrimary": "#323130",
    "neutralDark": "#201f1e",
    "black": "#000000",
    "white": "#ffffff",
}

_THEME_SLOTS = (
    "themePrimary",
    "themeLighterAlt",
    "themeLighter",
    "themeLight",
    "themeTertiary",
    "themeSecondary",
    "themeDarkAlt",
    "themeDark",
    "themeDarker",
)


def _palette(shades: List[str], neutrals: Dict[str, str], accent: str,
             body_background: str, body_text: str) -> Dict[str, str]:
    palette = dict(zip(_THEME_SLOTS, shades))
    palette.update(neutrals)
    palette["accent"] = accent
    palette["bodyBackground"] = body_background
    palette["bodyText"] = body_text
    return palette


def _light(shades: List[str], accent: str) -> Dict[str, str]:
    return _palette(shades, _LIGHT_NEUTRALS, accent, "#ffffff", "#323130")


THEME_PALETTES: Dict[str, Dict[str, str]] = {
    "Custom": _light(
        ["#004e8c", "#f0f6fb", "#c6dcee", "#9ac1e0", "#4a8dc1",
         "#115f9c", "#00467e", "#003b6a", "#002c4e"],
        accent="#ffaa44"),
    "Teal": _light(
        ["#03787c", "#f0f9fa", "#c5e9ea", "#98d6d8", "#49aeb1",
         "#13898d", "#026d70", "#025c5f", "#014446"],
        accent="#02878b"),
    "Red": _light(
        ["#a4262c", "#fbf4f4", "#f0d3d4", "#e3aeb1", "#c86268",
         "#ae353b", "#932227", "#7c1d21", "#5b1518"],
        accent="#ca5010"),
    "Orange": _light(
        ["#ca5010", "#fdf6f3", "#f6dccd", "#efbfa4", "#df8a56",
         "#d05f22", "#b5470e", "#993c0c", "#712c09"],
        accent="#986f0b"),
    "Green": _light(
        ["#498205", "#f5f9f0", "#d7e9c2", "#b7d594", "#7db347",
         "#579214", "#427505", "#386304", "#294903"],
        accent="#03787c"),
    "Blue": _light(
        ["#0078d4", "#eff6fc", "#deecf9", "#c7e0f4", "#71afe5",
         "#2b88d8", "#106ebe", "#005a9e", "#004578"],
        accent="#8764b8"),
    "Purple": _light(
        ["#8764b8", "#f9f8fc", "#e9e3f5", "#d7cbed", "#b29ad4",
         "#9373c0", "#7a5aa6", "#674c8c", "#4c3867"],
        accent="#038387"),
    "Gray": _light(
        ["#69797e", "#f8f9fa", "#e4e8e9", "#ced4d6", "#a1adb1",
         "#78888d", "#5f6d71", "#505c60", "#3b4446"],
        accent="#4f6bed"),
    "Periwinkle": _light(
        ["#4f6bed", "#f5f7fe", "#d7defb", "#b6c3f8", "#7890f2",
         "#5f78ee", "#4860d5", "#3d51b4", "#2d3c85"],
        accent="#8764b8"),
    "DarkYellow": _palette(
        ["#fce100", "#0d0b00", "#191700", "#2d2800", "#544900",
         "#7c6b00", "#fde61e", "#fdea3d", "#fdef6d"],
        {
            "neutralLighterAlt": "#282828",
            "neutralLighter": "#313131",
            "neutralLight": "#3f3f3f",
            "neutralQuaternaryAlt": "#484848",
            "neutralQuaternary": "#4f4f4f",
            "neutralTertiaryAlt": "#6d6d6d",
            "neutralTertiary": "#c8c8c8",
            "neutralSecondaryAlt": "#d0d0d0",
            "neutralSecondary": "#dadada",
            "neutralPrimaryAlt": "#eaeaea",
            "neutralPrimary": "#ffffff",
            "neutralDark": "#f4f4f4",
            "black": "#f8f8f8",
            "white": "#1f1f1f",
        },
        accent="#3a96dd", body_background="#1f1f1f", body_text="#ffffff"),
    "DarkBlue": _palette(
        ["#3a96dd", "#020609", "#091823", "#112d43", "#235a85",
         "#3385c3", "#4fa1e1", "#6cb0e5", "#97c6eb"],
        {
            "neutralLighterAlt": "#2e3340",
            "neutralLighter": "#353a49",
            "neutralLight": "#404759",
            "neutralQuaternaryAlt": "#474e62",
            "neutralQuaternary": "#4d5468",
            "neutralTertiaryAlt": "#686f84",
            "neutralTertiary": "#c8c8c8",
            "neutralSecondaryAlt": "#d0d0d0",
            "neutralSecondary": "#dadada",
            "neutralPrimaryAlt": "#eaeaea",
            "neutralPrimary": "#ffffff",
            "neutralDark": "#f4f4f4",
            "black": "#f8f8f8",
            "white": "#262a35",
        },
        accent="#fce100", body_background="#262a35", body_text="#ffffff"),
}


@dataclass(frozen=True)
class ResolvedTheme:
    """Tenant theme name paired with the palette it is created from."""
    name: str
    palette: Dict[str, str]


def theme_names() -> List[str]:
    return list(THEME_PALETTES)


def resolve_palette(name: str) -> Dict[str, str]:
    """
    Look up a palette by exact theme name.

    Unknown names fall back to the Green palette with a warning; the run
    carries on either way.
    """
    palette = THEME_PALETTES.get(name)
    if palette is None:
        logger.warning(
            f"Unknown color theme '{name}'. Valid options: {', '.join(THEME_PALETTES)}. "
            f"Falling back to '{DEFAULT_THEME}'"
        )
        palette = THEME_PALETTES[DEFAULT_THEME]
    return dict(palette)


def resolve_theme(config) -> ResolvedTheme:
    """Build the theme to create from a BrandingConfig without touching it."""
    return ResolvedTheme(name=config.theme_name,
                         palette=resolve_palette(config.color_theme_name))


def theme_json(palette: Dict[str, str]) -> str:
    """Serialize a palette the way the tenant theme endpoints expect it."""
    return json.dumps({"palette": palette})
