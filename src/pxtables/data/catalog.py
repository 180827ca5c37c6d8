"""PxWeb endpoint constants and the curated StatFin indicator catalog."""

from attrs import define, field

BASE_URL = "https://pxdata.stat.fi/PXWeb/api/v1/"
DEFAULT_LANGUAGE = "en"
DEFAULT_DATABASE = "StatFin"

KNOWN_DATABASES = (
    "StatFin",
    "Check",
    "Hyvinvointialueet",
    "Kokeelliset_tilastot",
    "Kuntien_avainluvut",
    "Kuntien_talous_ja_toiminta",
    "Maahanmuuttajat_ja_kotoutuminen",
    "NOVI-fi",
    "Postinumeroalueittainen_avoin_tieto",
    "SDG",
    "StatFin_Passiivi",
)


def _freeze_selection(value: dict[str, list[str] | tuple[str, ...]]) -> dict[str, tuple[str, ...]]:
    return {code: tuple(values) for code, values in value.items()}


@define(frozen=True)
class Indicator:
    """A single series carved out of a PxWeb table by fixed dimension choices."""

    id: str
    label: str
    table_path: str
    frequency: str
    unit: str
    category: str = ""
    selection: dict[str, tuple[str, ...]] = field(factory=dict, converter=_freeze_selection)
    max_periods: int | None = None
    geo: str = "FI"

    @property
    def series_id(self) -> str:
        return f"STATFIN_{self.id.upper()}"


_NTP = "StatFin/kan/ntp/statfin_ntp_pxt_132h.px"
_TYTI = "StatFin/tym/tyti/statfin_tyti_pxt_135z.px"
_JYNT = "StatFin/kan/jynt/statfin_jynt_pxt_12bs.px"
_KHI = "StatFin/hin/khi/statfin_khi_pxt_11xq.px"

INDICATORS: tuple[Indicator, ...] = (
    Indicator(
        id="fin_gdp_volume_q",
        label="GDP, volume index (2015=100), quarterly",
        category="National Accounts",
        table_path=_NTP,
        frequency="Q",
        unit="Index (2015=100)",
        selection={"Taloustoimi": ["B1GMH"], "Tiedot": ["indeksi_tvk"]},
    ),
    Indicator(
        id="fin_gdp_current_q",
        label="GDP, current prices (million EUR), quarterly",
        category="National Accounts",
        table_path=_NTP,
        frequency="Q",
        unit="Million EUR",
        selection={"Taloustoimi": ["B1GMH"], "Tiedot": ["kausitasoitettu"]},
    ),
    Indicator(
        id="fin_exports_q",
        label="Exports of goods and services (million EUR), quarterly",
        category="National Accounts",
        table_path=_NTP,
        frequency="Q",
        unit="Million EUR",
        selection={"Taloustoimi": ["P6"], "Tiedot": ["kausitasoitettu"]},
    ),
    Indicator(
        id="fin_imports_q",
        label="Imports of goods and services (million EUR), quarterly",
        category="National Accounts",
        table_path=_NTP,
        frequency="Q",
        unit="Million EUR",
        selection={"Taloustoimi": ["P7"], "Tiedot": ["kausitasoitettu"]},
    ),
    Indicator(
        id="fin_employment_rate_m",
        label="Employment rate (%), monthly",
        category="Labour Market",
        table_path=_TYTI,
        frequency="M",
        unit="%",
        selection={"Sukupuoli": ["SSS"], "Tiedot": ["Työllisyysaste_t"]},
    ),
    Indicator(
        id="fin_unemployment_rate_m",
        label="Unemployment rate (%), monthly",
        category="Labour Market",
        table_path=_TYTI,
        frequency="M",
        unit="%",
        selection={"Sukupuoli": ["SSS"], "Tiedot": ["Työttömyysaste_t"]},
    ),
    Indicator(
        id="fin_gov_expenditure_q",
        label="General government total expenditure (million EUR), quarterly",
        category="Public Finance",
        table_path=_JYNT,
        frequency="Q",
        unit="Million EUR",
        selection={"Sektori": ["S13"], "Taloustoimi": ["OTE"], "Tiedot": ["Kausi_milj"]},
    ),
    Indicator(
        id="fin_cpi_m",
        label="Consumer price index (2015=100), monthly",
        category="Prices",
        table_path=_KHI,
        frequency="M",
        unit="Index (2015=100)",
        selection={"Hyödyke": ["0"], "Tiedot": ["indeksipisteluku"]},
    ),
    Indicator(
        id="fin_inflation_yoy_m",
        label="Inflation, annual change (%), monthly",
        category="Prices",
        table_path=_KHI,
        frequency="M",
        unit="%",
        selection={"Hyödyke": ["0"], "Tiedot": ["vuosimuutos"]},
    ),
)


def get_indicator(indicator_id: str) -> Indicator:
    """Return the catalog entry for ``indicator_id`` or raise ``KeyError``."""
    for indicator in INDICATORS:
        if indicator.id == indicator_id:
            return indicator
    raise KeyError(indicator_id)


__all__ = [
    "BASE_URL",
    "DEFAULT_DATABASE",
    "DEFAULT_LANGUAGE",
    "INDICATORS",
    "KNOWN_DATABASES",
    "Indicator",
    "get_indicator",
]
