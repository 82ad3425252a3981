"""Measure/render tests for the individual layout blocks."""

import logging
from dataclasses import replace

import pytest

from documents import BranchInfo, ChecklistEntry, ChecklistStatus, CustomerInfo, LineItem
from pdf_layout import (
    PRICED_ROW_MIN_HEIGHT,
    SIGNATURE_BOX_HEIGHT,
    SIGNATURE_LINE_WIDTH,
    TABLE_LINE_HEIGHT,
    Box,
    Cursor,
    PanelPair,
    branch_fields,
    checklist_text,
    compose_policy_block,
    customer_fields,
    measure_checklist,
    measure_equipment_panel,
    measure_info_panel,
    measure_item_table,
    measure_line_item_rows,
    measure_policy_columns,
    measure_row,
    panel_min_height,
    policy_column_width,
    render_equipment_panel,
    render_info_panel,
    render_panel_pair,
    render_policy_block,
    render_signature,
    row_height,
    signature_reserve,
    split_columns,
    split_tax,
    tax_label,
    with_bullet,
    wrap_to_width,
)

LONG_POLICIES = [
    "Garantía 90 días por defectos de mano de obra y repuestos instalados por nuestro servicio técnico. " * 3,
    "NO cubre daños por mal uso, golpes, caídas, humedad o líquidos, ni equipos intervenidos por terceros. " * 3,
    "Presentar boleta o factura y esta orden de trabajo para hacer efectiva la garantía en cualquier sucursal. " * 3,
    "Los equipos no retirados dentro de 90 días desde la fecha de compromiso podrán ser dados de baja. " * 3,
    "El cliente declara que la información entregada sobre el estado del equipo es verídica y completa. " * 3,
]


class TestInfoPanels:
    def test_empty_panel_has_minimum_height(self, surface):
        panel = measure_info_panel(surface, "CLIENTE", [], 85)
        assert panel.height == panel_min_height() == 12
        assert panel.rows == ()

    def test_height_grows_with_lines(self, surface):
        short = measure_info_panel(surface, "SUCURSAL", [("Sucursal:", "Centro")], 85)
        long = measure_info_panel(
            surface, "SUCURSAL",
            [("Sucursal:", "Centro"), ("Dirección:", "Avenida Libertador Bernardo O'Higgins 3470, local 12, Estación Central, Santiago")],
            85,
        )
        assert short.height >= panel_min_height()
        assert long.height > short.height
        assert long.height == panel_min_height() + long.line_count * 5

    def test_blank_fields_are_skipped(self, surface):
        branch = BranchInfo(name="Centro", legal_name="", address="  ", phone="222", email="")
        panel = measure_info_panel(surface, "SUCURSAL", branch_fields(branch), 85)
        assert [r.label for r in panel.rows] == ["Sucursal:", "Teléfono:"]

    def test_render_uses_measured_height(self, surface):
        panel = measure_info_panel(surface, "SUCURSAL", [("Sucursal:", "Centro"), ("Correo:", "centro@example.com")], 85)
        render_info_panel(surface, Box(15, 40, 85, panel.height), panel)
        background = surface.rects[0]
        assert background[3] == panel.height
        assert background[4] == "F"

    def test_pair_panels_share_taller_height(self, surface):
        left = measure_info_panel(surface, "SUCURSAL", branch_fields(BranchInfo(name="Centro")), 85)
        right = measure_info_panel(
            surface, "CLIENTE",
            customer_fields(CustomerInfo(name="Ana", phone="91234567", email="ana@example.com", address="Los Leones 100")),
            85,
        )
        pair = PanelPair(left, right)
        assert left.height != right.height

        end = render_panel_pair(surface, Cursor(40), 15, 180, 10, pair)

        borders = [r for r in surface.rects if r[4] == "S"]
        assert len(borders) == 2
        assert borders[0][3] == borders[1][3] == max(left.height, right.height)
        assert end.y == 40 + pair.height

    def test_customer_phone_gets_country_code(self):
        fields = dict(customer_fields(CustomerInfo(name="Ana", phone="91234567", phone_country_code="+56")))
        assert fields["Teléfono:"] == "+56 91234567"


class TestItemTable:
    def test_row_height_follows_taller_column(self, surface):
        note = "\n".join(["uno", "dos", "tres", "cuatro", "cinco"])
        row = measure_row(surface, "-", ["PANTALLA"], note, "-")
        assert len(row.name_lines) == 1
        assert len(row.note_lines) == 5
        assert row.height == 5 * TABLE_LINE_HEIGHT

    def test_row_height_never_below_one_line(self):
        assert row_height([], []) == TABLE_LINE_HEIGHT

    def test_priced_row_keeps_room_for_caption(self, surface):
        row = measure_row(surface, "-", ["BATERIA"], "Cambio", "$10.000", "1 x $10.000")
        assert row.height == PRICED_ROW_MIN_HEIGHT

    def test_stored_total_is_rendered_verbatim(self, surface, sample_order):
        order = replace(
            sample_order,
            replacement_cost=0,
            line_items=(LineItem(name="Soldadura", quantity=2, unit_price=1000, total=2500),),
        )
        rows = measure_line_item_rows(surface, order)
        assert [r.amount for r in rows] == ["$2.500"]
        assert rows[0].caption == "2 x $1.000"

    def test_service_note_fallbacks(self, surface, sample_order):
        rows = measure_line_item_rows(surface, sample_order)
        # first item has no description -> full problem description, never truncated
        assert " ".join(rows[0].note_lines) == sample_order.problem_description
        assert rows[1].note_lines == ("Limpieza de conectores",)

    def test_replacement_row_added(self, surface, sample_order):
        rows = measure_line_item_rows(surface, sample_order)
        assert rows[-1].name_lines == ("REPUESTO",)
        assert rows[-1].note_lines == ("Repuesto original",)
        assert rows[-1].amount == "$15.000"

    def test_device_row_lists_credentials(self, surface, sample_order):
        table = measure_item_table(surface, sample_order, 174)
        device = table.rows[0]
        assert device.marker == "1"
        name = " ".join(device.name_lines)
        assert device.name_lines[0] == "iPhone 13 Pro"
        assert "IMEI: 356789104512345" in name
        assert "PASSCODE: 1234" in name
        assert table.height == 7 + 3 + sum(r.height for r in table.rows)

    def test_columns_must_fit_interior(self, surface, sample_order):
        with pytest.raises(ValueError):
            measure_item_table(surface, sample_order, 100)


class TestChecklist:
    def test_only_entries_with_status_appear(self):
        text = checklist_text([ChecklistEntry("Screen", ChecklistStatus.OK), ChecklistEntry("Battery", None)])
        assert text == "Screen (ok)"
        assert "Battery" not in text

    def test_status_suffixes(self):
        text = checklist_text([
            ChecklistEntry("A", ChecklistStatus.DAMAGED),
            ChecklistEntry("B", ChecklistStatus.REPLACED),
            ChecklistEntry("C", ChecklistStatus.UNTESTED),
        ])
        assert text == "A (dañada), B (rep), C (no probado)"

    def test_no_block_without_statuses(self, surface):
        assert measure_checklist(surface, [ChecklistEntry("Battery", None)], 174) is None

    def test_equipment_height_includes_checklist(self, surface, sample_order):
        with_list = measure_equipment_panel(surface, sample_order, 180)
        without = measure_equipment_panel(surface, replace(sample_order, checklist=()), 180)
        assert with_list.height - without.height == with_list.checklist.height


class TestTotals:
    def test_tax_decomposition(self):
        breakdown = split_tax(119)
        assert breakdown.subtotal == pytest.approx(100.00, abs=0.01)
        assert breakdown.tax == pytest.approx(19.00, abs=0.01)
        assert breakdown.total == 119

    @pytest.mark.parametrize("total, subtotal, tax", [(47, 39, 8), (11947, 10039, 1908)])
    def test_whole_pesos_add_up(self, total, subtotal, tax):
        breakdown = split_tax(total)
        assert (breakdown.subtotal, breakdown.tax) == (subtotal, tax)
        assert breakdown.subtotal + breakdown.tax == breakdown.total == total

    def test_printed_totals_add_up(self, surface, sample_order):
        order = replace(
            sample_order,
            replacement_cost=0,
            line_items=(LineItem(name="Cambio de batería", quantity=1, unit_price=11947, total=11947),),
        )
        panel = measure_equipment_panel(surface, order, 180)
        render_equipment_panel(surface, Box(15, 100, 180, panel.height), panel, order)

        texts = surface.texts
        subtotal = texts[texts.index("Subtotal:") + 1]
        tax = texts[texts.index("IVA (19%):") + 1]
        assert (subtotal, tax) == ("$10.039", "$1.908")
        assert texts[texts.index("TOTAL:") + 1] == "$11.947"

    def test_zero_total(self):
        breakdown = split_tax(0)
        assert (breakdown.subtotal, breakdown.tax) == (0, 0)

    def test_tax_label(self):
        assert tax_label(0.19) == "IVA (19%):"


class TestPolicies:
    def test_bullet_is_not_duplicated(self):
        assert with_bullet("• Sin garantía") == "• Sin garantía"
        assert with_bullet("Sin garantía") == "• Sin garantía"

    def test_columns_alternate(self):
        assert split_columns(["a", "b", "c", "d", "e"]) == (["a", "c", "e"], ["b", "d"])

    def test_picks_largest_size_that_fits(self, surface):
        width = policy_column_width(180)
        h45 = measure_policy_columns(surface, LONG_POLICIES, width, 4.5).column_height
        h4 = measure_policy_columns(surface, LONG_POLICIES, width, 4).column_height
        assert h45 > h4

        block = compose_policy_block(surface, LONG_POLICIES, 180, budget=(h45 + h4) / 2)
        assert block.font_size == 4
        assert not block.overflow

    def test_skips_straight_from_five_to_four(self, surface):
        width = policy_column_width(180)
        h4 = measure_policy_columns(surface, LONG_POLICIES, width, 4).column_height
        block = compose_policy_block(surface, LONG_POLICIES, 180, budget=h4, font_sizes=(5, 4, 3))
        assert block.font_size == 4

    def test_roomy_budget_keeps_largest_size(self, surface):
        block = compose_policy_block(surface, ["Garantía 30 días."], 180, budget=200)
        assert block.font_size == 5

    def test_overflow_uses_smallest_size(self, surface, caplog):
        with caplog.at_level(logging.WARNING):
            block = compose_policy_block(surface, LONG_POLICIES, 180, budget=1)
        assert block.font_size == 3
        assert block.overflow
        assert "overflow" in caplog.text
        # nothing is dropped
        assert len(block.columns.left) + len(block.columns.right) == len(LONG_POLICIES)

    def test_signature_reserve(self):
        assert signature_reserve() == 30


class TestRenderKeepsMeasuredHeight:
    def test_equipment_panel(self, surface, sample_order):
        panel = measure_equipment_panel(surface, sample_order, 180)
        box = Box(15, 90, 180, panel.height)

        end = render_equipment_panel(surface, box, panel, sample_order)

        background = surface.rects[0]
        assert background[4] == "F"
        assert background[3] == panel.height
        assert max(surface.baselines) <= box.bottom
        assert end.y == box.bottom

    @pytest.mark.parametrize("budget", [200, 1])
    def test_policy_block(self, surface, budget):
        block = compose_policy_block(surface, LONG_POLICIES, 180, budget=budget)
        box = Box(15, 200, 180, block.height)

        end = render_policy_block(surface, box, block)

        background = surface.rects[0]
        assert background[4] == "F"
        assert background[3] == block.height
        assert max(surface.baselines) <= box.bottom
        assert end.y == box.bottom

    def test_signature_box(self, surface):
        end = render_signature(surface, Cursor(250))
        box = surface.rects[-1]
        assert box[3:] == (SIGNATURE_BOX_HEIGHT, "FD")
        assert surface.line_widths == [SIGNATURE_LINE_WIDTH]
        assert end.y == 250 + signature_reserve()


def test_wrap_falls_back_to_single_line(surface, monkeypatch, caplog):
    monkeypatch.setattr(surface, "split_text", lambda text, width: [])
    with caplog.at_level(logging.WARNING):
        lines = wrap_to_width(surface, "texto", 50, 8)
    assert lines == ["texto"]
    assert "single line" in caplog.text


def test_wrap_keeps_empty_text_empty(surface):
    assert wrap_to_width(surface, "", 50, 8) == []
