from __future__ import annotations

from dataclasses import dataclass, fields, replace
from typing import Literal, Mapping


LocatorKind = Literal["id", "css", "xpath"]


@dataclass(frozen=True)
class Locator:
    """
    Opaque element address handed to the page driver.

    Business logic never builds selector strings itself; it only passes these around.
    """

    kind: LocatorKind
    value: str

    @classmethod
    def id(cls, value: str) -> "Locator":
        return cls("id", value)

    @classmethod
    def css(cls, value: str) -> "Locator":
        return cls("css", value)

    @classmethod
    def xpath(cls, value: str) -> "Locator":
        return cls("xpath", value)

    @classmethod
    def parse(cls, raw: str) -> "Locator":
        """
        Parse "id=foo", "css=div > span", "xpath=//option" (also bare "//..." as xpath, "#foo" as css).
        """
        s = (raw or "").strip()
        if not s:
            raise ValueError("locator must not be empty")
        for kind in ("id", "css", "xpath"):
            prefix = f"{kind}="
            if s.startswith(prefix):
                return cls(kind, s[len(prefix):])  # type: ignore[arg-type]
        if s.startswith("/") or s.startswith("("):
            return cls("xpath", s)
        return cls("css", s)

    def __str__(self) -> str:
        return f"{self.kind}={self.value}"


@dataclass(frozen=True)
class PortalLocators:
    """
    The KEPCO online portal is a WebSquare app; ids/paths may change over time.
    Keep all locators here (or override them from config) for easy maintenance.
    """

    # Login
    menu_button: Locator = Locator.id("mf_wfm_header_gnb_btnSiteMap")
    login_form_link: Locator = Locator.id("mf_wfm_header_gnb_mobileGoLogin")
    user_id_input: Locator = Locator.id("mf_wfm_header_gnb_login_popup_wframe_ui_id")
    password_input: Locator = Locator.id("mf_wfm_header_gnb_login_popup_wframe_ui_pw")
    login_submit: Locator = Locator.id("mf_wfm_header_gnb_login_popup_wframe_btn_login")

    # Billing screen
    billing_menu_link: Locator = Locator.xpath("/html/body/div[2]/div[3]/div/div/div[4]/div/div[2]/div[1]/a[3]")
    customer_number_input: Locator = Locator.id("mf_wfm_layout_inp_searchCustNo")
    search_button: Locator = Locator.id("mf_wfm_layout_btn_search")

    # Global "processing" overlay; aria-hidden="true" means idle.
    busy_indicator: Locator = Locator.id("mf_wq_uuid_1_wq_processMsgComp")

    # Detail screen
    detail_button: Locator = Locator.id("mf_wfm_layout_ui_generator_0_btn_moveDetail")
    recent_range_option: Locator = Locator.xpath("//option[text()='1년']")
    records_container: Locator = Locator.id("mf_wfm_layout_ui_generator")

    # Historical month picker (back on the billing screen)
    month_picker: Locator = Locator.id("mf_wfm_layout_slb_searchYm_input_0")

    def with_overrides(self, overrides: Mapping[str, str]) -> "PortalLocators":
        known = {f.name for f in fields(self)}
        unknown = sorted(set(overrides) - known)
        if unknown:
            raise ValueError(f"Unknown locator name(s): {', '.join(unknown)}")
        return replace(self, **{k: Locator.parse(v) for k, v in overrides.items()})
