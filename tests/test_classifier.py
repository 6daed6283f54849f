"""Tests for the catalog rule tables."""

import pytest

from image_servicing.catalog.classifier import CatalogRules
from image_servicing.models import Classification


class TestClassify:
    @pytest.mark.parametrize(
        "title,expected",
        [
            ("2024-05 Servicing Stack Update for Windows 10 Version 22H2 for x64-based Systems (KB5037995)", Classification.SERVICING_STACK),
            ("2024-05 Cumulative Update for Windows 10 Version 22H2 for x64-based Systems (KB5037768)", Classification.CUMULATIVE_UPDATE),
            ("2024-05 Cumulative Update for .NET Framework 3.5, 4.8 and 4.8.1 for Windows 10 Version 22H2 for x64 (KB5037591)", Classification.RUNTIME_COMPONENT_CUMULATIVE),
            (".NET Framework 4.8.1 for Windows 10 Version 22H2 for x64 (KB5011048)", Classification.RUNTIME_COMPONENT),
            ("2024-05 Dynamic Cumulative Update for Windows 10 Version 22H2 for x64-based Systems (KB5037768)", Classification.DYNAMIC_UPDATE),
            ("2024-05 Setup Dynamic Update for Windows 10 Version 22H2 for x64-based Systems (KB5037858)", Classification.DYNAMIC_UPDATE),
            ("Security Intelligence Update for Microsoft Defender Antivirus - KB2267602", Classification.DEFINITION),
            ("Windows Malicious Software Removal Tool x64 - v5.124 (KB890830)", Classification.OPTIONAL),
        ],
    )
    def test_priority_order(self, rules, title, expected):
        assert rules.classify(title) == expected

    def test_case_insensitive(self, rules):
        assert rules.classify("servicing stack update for windows 11") == Classification.SERVICING_STACK

    def test_runtime_cumulative_checked_before_os_cumulative(self, rules):
        title = "Cumulative Update for .NET Framework 4.8.1 for Windows 11 (KB1)"
        assert rules.classify(title) == Classification.RUNTIME_COMPONENT_CUMULATIVE


class TestExclusions:
    @pytest.mark.parametrize(
        "title",
        [
            "Feature update to Windows 10, version 22H2",
            "Upgrade to Windows 11 (business editions)",
            "Windows 10 Language Pack",
            "Windows 10 (consumer editions), version 22H2, x64 en-us",
        ],
    )
    def test_excluded(self, rules, title):
        assert rules.excluded(title)

    def test_regular_update_not_excluded(self, rules):
        assert rules.excluded("2024-05 Cumulative Update for Windows 10 Version 22H2") is None


class TestIncompatibleFiles:
    @pytest.mark.parametrize(
        "filename,reason",
        [
            ("windows10.0-kb5037768-x64.psf.cab", "metadata_only"),
            ("windows10.0-kb5037768-x64-express.cab", "express"),
            ("windows10.0-kb5037768-x64_baseless_abc.cab", "baseless"),
        ],
    )
    def test_filtered(self, rules, filename, reason):
        assert rules.incompatible(filename) == reason

    def test_plain_cab_allowed(self, rules):
        assert rules.incompatible("windows10.0-kb5037768-x64.cab") is None


class TestCategories:
    def test_build_broadens_to_category(self, rules):
        assert rules.category_for("Windows 10", "21H2") == "Windows 10, version 1903 and later"
        assert rules.category_for("Windows 10", "22H2") == "Windows 10, version 1903 and later"

    def test_unknown_build_falls_back_to_product(self, rules, caplog):
        assert rules.category_for("Windows 10", "9999") == "Windows 10"
        assert "No category mapping" in caplog.text

    def test_relabel_products(self, rules):
        assert rules.relabel_capable("Windows 11")
        assert not rules.relabel_capable("Windows 10")


class TestFromRaw:
    def test_rules_are_data(self):
        rules = CatalogRules.from_raw(
            {
                "classification_rules": [{"match": "Hotpatch", "classification": "LCU"}],
                "incompatible_files": ["*.tmp.cab"],
            }
        )
        assert rules.classify("2025-01 Hotpatch for Windows") == Classification.CUMULATIVE_UPDATE
        assert rules.classify("anything else") == Classification.OPTIONAL
        assert rules.incompatible("x.tmp.cab") == "incompatible"

    def test_invalid_rule_rejected(self):
        with pytest.raises(ValueError):
            CatalogRules.from_raw({"classification_rules": [{"match": "x"}]})

    def test_unknown_classification_rejected(self):
        with pytest.raises(ValueError):
            CatalogRules.from_raw({"classification_rules": [{"match": "x", "classification": "Bogus"}]})
