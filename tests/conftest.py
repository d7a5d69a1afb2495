"""Shared fixtures: a small lead / sale SQLite database and matching spend exports."""

from __future__ import annotations

import sqlite3
from pathlib import Path

import pytest

LEADS = [
    # id, ANUNCIO, SEGMENTACION, CAMPAÑA, AD_ID, FECHA_REGISTRO, PAIS,
    # QLEAD, INGRESOS, ESTUDIOS, OCUPACION, PROPOSITO, EDAD_ESPECIFICA, PUNTAJE
    (1, "AdX", "SegA", "PQ_Test", "111", "2024-01-01 09:15:00", "Mexico",
     "A", "alto", "universidad", "empleado", "crecer", "25-34", 80),
    (2, "AdX", "SegA", "PQ_Test", "111", "2024-01-01 18:00:00", "Mexico",
     "B", "alto", "universidad", "empleado", "crecer", "25-34", 60),
    (3, "AdY", "SegB", "PF_Cold", "", "2024-01-02", "Chile",
     "B", "bajo", "secundaria", "estudiante", "aprender", "18-24", 40),
    (4, "AdY", "SegB", "PF_Cold", "", "2024-01-02", "Chile",
     "B", "bajo", "secundaria", "estudiante", None, "18-24", 20),
    (5, "{{adset.name}}", "SegA", "PQ_Test", "", "2024-01-02", None,
     None, None, None, None, None, None, None),
]

SALES = [
    # cliente_id, monto, fuente, FECHA
    (1, 100, "Meta", "2024-01-03"),
    (1, 50, "", "2024-01-01"),
    (2, "12,5", None, "2024-01-02"),
    (3, 30, "organico", "2024-01-05"),
    (9, 20, "Orgánico", "2024-01-04"),
]

SPEND_CSV = (
    "Campaign Name,Ad Set Name,Ad Name,Amount Spent,Ad ID,Day\n"
    'PQ_Test,SegA,AdX,"60,00",111,2024-01-01\n'
    "PQ_Test,SegA,AdX,40,111,2024-01-02\n"
    "PF_Cold,SegB,AdY,25.5,,2024-01-02\n"
    "PF_Cold,SegC,AdZ,10,,2024-01-02\n"
)

COUNTRY_CSV = (
    "Day,Amount Spent,Campaign Name,Leads,Country\n"
    "2024-01-01,50,PQ_Test,2,Mexico\n"
    "2024-01-02,20,PF_Cold,2,Chile\n"
    "2024-01-02,5,PQ_Test,0,Mexico\n"
)


def build_db(path: Path, leads=LEADS, sales=SALES) -> Path:
    conn = sqlite3.connect(path)
    conn.execute(
        'CREATE TABLE captaciones ("#" INTEGER, ANUNCIO TEXT, SEGMENTACION TEXT, '
        '"CAMPAÑA" TEXT, AD_ID TEXT, FECHA_REGISTRO TEXT, PAIS TEXT, QLEAD TEXT, '
        "INGRESOS TEXT, ESTUDIOS TEXT, OCUPACION TEXT, PROPOSITO TEXT, "
        "EDAD_ESPECIFICA TEXT, PUNTAJE REAL)"
    )
    conn.execute("CREATE TABLE ventas (cliente_id INTEGER, monto, fuente TEXT, FECHA TEXT)")
    conn.executemany(f"INSERT INTO captaciones VALUES ({', '.join('?' * 14)})", leads)
    conn.executemany("INSERT INTO ventas VALUES (?, ?, ?, ?)", sales)
    conn.commit()
    conn.close()
    return path


@pytest.fixture
def lead_db(tmp_path) -> Path:
    return build_db(tmp_path / "captaciones.sqlite")


@pytest.fixture
def spend_csv() -> str:
    return SPEND_CSV


@pytest.fixture
def country_csv() -> str:
    return COUNTRY_CSV
