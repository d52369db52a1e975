# Overview: Provisioning exports of finally validated merchants and operators (xlsx / csv).

from __future__ import annotations

import csv
import io

from flask import current_app
from openpyxl import Workbook

from ..errors import NotFound, ValidationFailed
from . import merchant_service

XLSX_MIMETYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
CSV_MIMETYPE = "text/csv"
FORMATS = ("xlsx", "csv")

NOTIFICATION_CHANNEL = "1001"
NOTIFICATION_LANGUAGE = "fr"
ORGANIZATION_TYPE = "MERCHANT"
CONTACT_TYPE = "02"
PRODUCT = "45071"
CHARGE_PROFILE = "55055"
PURPOSE = "01"
OPERATOR_AUTH_TYPE = "WEB"
OPERATOR_ID_TYPE = "01"
OPERATOR_ROLE_ID = "500000000000011509"

# (header, value) pairs; a str value is a fixed cell, a callable reads the merchant
MERCHANT_COLUMNS = [
    ("ShortCode", lambda m: m.short_code),
    ("OrganizationName", lambda m: m.name),
    ("Country", "[Address Details][Country]"),
    ("Country Value", lambda m: current_app.config["EXPORT_COUNTRY_CODE"]),
    ("City", "[Address Details][City]"),
    ("City Value", lambda m: m.city),
    ("Preferred Notification Channel", "[Contact Details][Preferred Notification Channel]"),
    ("Preferred Notification Channel Value", NOTIFICATION_CHANNEL),
    ("Notification Receiving MSISDN", "[Contact Details][Notification Receiving MSISDN]"),
    ("Notification Receiving MSISDN Value", lambda m: m.contact),
    ("Preferred Notification Language", "[Contact Details][Preferred Notification Language]"),
    ("Preferred Notification Language Value", NOTIFICATION_LANGUAGE),
    ("Commercial Register", "[Corporate Information][Commercial Register]"),
    ("Commercial Register Value", lambda m: m.trade_register),
    ("NIF", "[Corporate Information][NIF]"),
    ("NIF Value", lambda m: m.tax_id),
    ("Organization Type", "[Organization Type][Organization Type]"),
    ("Organization Type Value", ORGANIZATION_TYPE),
    ("Contact Type", "[Organization Contact Details][Contact Type]"),
    ("Contact Type Value", CONTACT_TYPE),
    ("Contact First Name", "[Organization Contact Details][Contact First Name]"),
    ("Contact First Name Value", lambda m: m.manager_first_name),
    ("Contact Second Name", "[Organization Contact Details][Contact Second Name]"),
    ("Contact Second Name Value", lambda m: m.manager_last_name),
    ("Product", PRODUCT),
    ("ChargeProfile", CHARGE_PROFILE),
    ("Purpose of the company", "[Corporate Information][Purpose of the company]"),
    ("Purpose of the company Value", PURPOSE),
]

# (header, value) pairs; callables receive (merchant, operator)
OPERATOR_COLUMNS = [
    ("Notification Language", NOTIFICATION_LANGUAGE),
    ("Organization ShortCode", lambda m, op: op.short_code or m.short_code),
    ("AuthenticationType", OPERATOR_AUTH_TYPE),
    ("UserName", ""),
    ("OperatorID", ""),
    ("MSISDN", lambda m, op: op.phone),
    ("First Name", "[Personal Details][First Name]"),
    ("First Name Value", lambda m, op: op.first_name),
    ("Middle Name", "[Personal Details][Middle Name]"),
    ("Middle Name Value", ""),
    ("Last name", "[Personal Details][Last Name]"),
    ("Last name Value", lambda m, op: op.last_name),
    ("Date of Birth", "[Personal Details][Date of Birth]"),
    ("Date of Birth Value", ""),
    ("id1 type", "[ID Details][ID Type]"),
    ("id1 type value", OPERATOR_ID_TYPE),
    ("ID 1 Number", "[ID Details][ID Number]"),
    ("ID 1 Number Value", lambda m, op: op.national_id),
    ("Preferred Notification Channel", "[Contact Details][Preferred Notification Channel]"),
    ("Preferred Notification Channel Value", NOTIFICATION_CHANNEL),
    ("Notification Receiving MSISDN", "[Contact Details][Notification Receiving MSISDN]"),
    ("Notification Receiving MSISDN Value", lambda m, op: international_msisdn(op.phone)),
    ("Preferred Notification Language", "[Contact Details][Preferred Notification Language]"),
    ("Preferred Notification Language Value", NOTIFICATION_LANGUAGE),
    ("Role ID", OPERATOR_ROLE_ID),
]


def international_msisdn(phone: str | None) -> str:
    """Prefix a local number with the country dialing code (once)."""
    if not phone:
        return ""
    prefix = current_app.config["EXPORT_PHONE_PREFIX"]
    return phone if phone.startswith(prefix) else f"{prefix}{phone}"


def _cell(value, *args):
    if callable(value):
        value = value(*args)
    return "" if value is None else value


def merchant_rows() -> tuple[list[str], list[list]]:
    merchants = merchant_service.finally_validated_merchants()
    if not merchants:
        raise NotFound("No finally validated merchants to export")
    headers = [header for header, _ in MERCHANT_COLUMNS]
    rows = [[_cell(value, m) for _, value in MERCHANT_COLUMNS] for m in merchants]
    return headers, rows


def operator_rows() -> tuple[list[str], list[list]]:
    headers = [header for header, _ in OPERATOR_COLUMNS]
    rows = [
        [_cell(value, m, op) for _, value in OPERATOR_COLUMNS]
        for m in merchant_service.finally_validated_merchants()
        for op in m.operators
    ]
    if not rows:
        raise NotFound("No operators to export")
    return headers, rows


def to_xlsx(headers: list[str], rows: list[list], sheet_title: str) -> bytes:
    wb = Workbook()
    sheet = wb.active
    sheet.title = sheet_title
    sheet.append(headers)
    for row in rows:
        sheet.append(row)
    buffer = io.BytesIO()
    wb.save(buffer)
    return buffer.getvalue()


def to_csv(headers: list[str], rows: list[list]) -> bytes:
    stream = io.StringIO()
    writer = csv.writer(stream)
    writer.writerow(headers)
    writer.writerows(rows)
    return stream.getvalue().encode("utf-8")


def render(kind: str, fmt: str = "xlsx") -> tuple[bytes, str, str]:
    """
    Build an export. kind is "merchants" or "operators".

    Returns (payload, mimetype, filename).
    """
    fmt = (fmt or "xlsx").lower()
    if fmt not in FORMATS:
        raise ValidationFailed(f"format must be one of: {', '.join(FORMATS)}", {"field": "format"})

    if kind == "merchants":
        headers, rows = merchant_rows()
        sheet_title = "Merchants"
    elif kind == "operators":
        headers, rows = operator_rows()
        sheet_title = "Operators"
    else:
        raise ValidationFailed(f"Unknown export: {kind}")

    filename = f"{kind}_export.{fmt}"
    if fmt == "csv":
        return to_csv(headers, rows), CSV_MIMETYPE, filename
    return to_xlsx(headers, rows, sheet_title), XLSX_MIMETYPE, filename
