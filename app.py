"""Sales notes service for the vehicle and condo rental desk.

This Flask application turns the free-text monthly sales notes kept by the
rental desk into structured JSON and stores the results.  It exposes a small
JSON API used by the admin screens:

    POST /api/notes/parse       parse raw notes text into months
    POST /api/sales/migrate     store parsed months as individual sales
    GET  /api/sales             list saved monthly totals
    POST /api/sales             create or update a month's totals
    POST /api/sales/history     save parsed months with their entries
    GET  /api/health            database health check

To run the app locally:

    # Install dependencies
    pip install -e .

    # Initialise the database
    python app.py --init-db

    # Start the development server
    python app.py

    # Or parse a notes file from the command line
    python app.py --parse-notes notes.txt

The database defaults to a local SQLite file; set ``DATABASE_URL`` to use
another database.
"""

import argparse
import json
import math
import os
from datetime import date, datetime

from flask import Flask, jsonify, request
from flask_sqlalchemy import SQLAlchemy
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException

from sales_notes import MonthData, parse_sales_notes
from sales_records import flatten_months


app = Flask(__name__)
app.config['SECRET_KEY'] = os.environ.get('SECRET_KEY', 'change-me')
app.config['SQLALCHEMY_DATABASE_URI'] = os.environ.get('DATABASE_URL', 'sqlite:///rentals.db')
app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False
# Notes are full of emoji; keep them readable in responses.
app.json.ensure_ascii = False

db = SQLAlchemy(app)


class Sale(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    amount = db.Column(db.Float, nullable=False)
    category = db.Column(db.String(20), nullable=False)  # vehicle or condo
    notes = db.Column(db.Text)
    created_at = db.Column(db.Date, default=date.today)

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'amount': self.amount,
            'category': self.category,
            'notes': self.notes,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self) -> str:
        return f"<Sale {self.category} {self.amount}>"


# ---------------------------------------------------------------------------
# Monthly history.  One row per (year, month) holding the parsed entries and
# the totals shown on the sales comparison screens.
class SalesHistory(db.Model):
    __tablename__ = 'sales_history'
    __table_args__ = (db.UniqueConstraint('year', 'month', name='uq_sales_history_year_month'),)

    id = db.Column(db.Integer, primary_key=True)
    year = db.Column(db.String(10), nullable=False)
    month = db.Column(db.String(20), nullable=False)
    vehicles = db.Column(db.JSON)
    condos = db.Column(db.JSON)
    total_vehicles = db.Column(db.Float, default=0)
    total_condos = db.Column(db.Float, default=0)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'year': self.year,
            'month': self.month,
            'vehicles': self.vehicles,
            'condos': self.condos,
            'total_vehicles': self.total_vehicles or 0,
            'total_condos': self.total_condos or 0,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self) -> str:
        return f"<SalesHistory {self.year}-{self.month}>"


# ---------------------------------------------------------------------------
# Helper functions

def json_body() -> dict:
    """Return the request JSON object, or an empty dict for anything else."""
    body = request.get_json(silent=True)
    return body if isinstance(body, dict) else {}


def error_response(message: str, status: int):
    return jsonify({'error': message}), status


def to_number(value, default: float = 0.0) -> float:
    """Best-effort float conversion for totals posted by the client."""
    if value is None or isinstance(value, bool):
        return default
    try:
        number = float(str(value).replace(',', ''))
    except ValueError:
        return default
    return number if math.isfinite(number) else default


def upsert_history(year: str, month: str, **fields) -> SalesHistory:
    """
    Create the history row for ``year``/``month`` or update the existing one.
    Only the given fields are written; the caller commits.
    """
    row = SalesHistory.query.filter_by(year=year, month=month).first()
    if row is None:
        row = SalesHistory(year=year, month=month)
        db.session.add(row)
    for name, value in fields.items():
        setattr(row, name, value)
    return row


def year_sort_key(year: str):
    try:
        return (1, int(year))
    except ValueError:
        return (0, 0)


@app.errorhandler(HTTPException)
def handle_http_error(exc: HTTPException):
    """API callers get JSON errors; other paths keep the default pages."""
    if request.path.startswith('/api/'):
        return error_response(exc.description or exc.name, exc.code or 500)
    return exc


# ---------------------------------------------------------------------------
# Notes parsing

@app.route('/api/notes/parse', methods=['POST'])
def parse_notes():
    """
    Parse raw sales notes.  Body: ``{"text": "..."}``.  Responds with
    ``{"items": [MonthData, ...]}`` in the order the month headers appear.
    """
    raw = json_body().get('text')
    if not raw or not isinstance(raw, str):
        return error_response('No text', 400)
    months = parse_sales_notes(raw)
    app.logger.info("Parsed %d month(s) from %d characters of notes", len(months), len(raw))
    return jsonify({'items': [m.to_dict() for m in months]})


# ---------------------------------------------------------------------------
# Migration of parsed notes into individual sale records.  Every vehicle and
# condo entry becomes one Sale dated on the first day of its month.  Entries
# without a positive amount are skipped.

@app.route('/api/sales/migrate', methods=['POST'])
def migrate_sales():
    body = json_body()
    items = body.get('items')
    if not isinstance(items, list) or not items:
        return jsonify({'inserted': 0})

    rows = flatten_months(items, body.get('defaultDate'))
    if not rows:
        return jsonify({'inserted': 0})

    try:
        sales = [Sale(amount=r['amount'], category=r['category'], notes=r['notes'],
                      created_at=date.fromisoformat(r['created_at']))
                 for r in rows]
        db.session.add_all(sales)
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        app.logger.exception("Sales migration failed")
        return error_response(str(exc), 500)

    app.logger.info("Migrated %d sale record(s)", len(sales))
    return jsonify({'inserted': len(sales)})


# ---------------------------------------------------------------------------
# Monthly sales history

@app.route('/api/sales', methods=['GET'])
def list_sales_history():
    """
    List saved months.  With both ``year`` and ``month`` query parameters only
    that month is returned; otherwise every month, newest year first.
    """
    year = request.args.get('year')
    month = request.args.get('month')
    if year and month:
        rows = SalesHistory.query.filter_by(year=year, month=month).all()
    else:
        rows = SalesHistory.query.order_by(SalesHistory.year.desc(), SalesHistory.month.desc()).all()
    return jsonify([r.to_dict() for r in rows])


@app.route('/api/sales', methods=['POST'])
def save_sales_totals():
    """Create or update the totals for one month."""
    body = json_body()
    year = body.get('year')
    month = body.get('month')
    if not year or not month:
        return error_response('year and month are required', 400)

    fields = {
        'total_vehicles': to_number(body.get('total_vehicles')),
        'total_condos': to_number(body.get('total_condos')),
    }
    for name in ('vehicles', 'condos'):
        if isinstance(body.get(name), list):
            fields[name] = body[name]

    try:
        row = upsert_history(str(year), str(month), **fields)
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        app.logger.exception("Saving sales totals for %s-%s failed", year, month)
        return error_response(str(exc), 500)
    return jsonify(row.to_dict())


@app.route('/api/sales/history', methods=['POST'])
def save_sales_history():
    """
    Save parsed months (as returned by ``/api/notes/parse``) with their
    entries.  Existing months are overwritten.
    """
    items = json_body().get('items')
    if not isinstance(items, list):
        return error_response('items must be a list', 400)

    try:
        months = [MonthData.from_dict(item) for item in items if isinstance(item, dict)]
    except ValueError as exc:
        return error_response(str(exc), 400)
    try:
        for m in months:
            data = m.to_dict()
            upsert_history(m.year, m.month,
                           vehicles=data['vehicles'],
                           condos=data['condos'],
                           total_vehicles=m.total_vehicles,
                           total_condos=m.total_condos)
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        app.logger.exception("Saving sales history failed")
        return error_response(str(exc), 500)

    app.logger.info("Saved %d month(s) of sales history", len(months))
    return jsonify({'saved': len(months)})


@app.route('/api/sales/history/years')
def sales_history_years():
    years = {row.year for row in SalesHistory.query.with_entities(SalesHistory.year)}
    return jsonify(sorted(years, key=year_sort_key, reverse=True))


@app.route('/api/sales/history/<year>/months')
def sales_history_months(year: str):
    rows = SalesHistory.query.filter_by(year=year).order_by(SalesHistory.id.asc()).all()
    return jsonify([r.month for r in rows])


@app.route('/api/health')
def health():
    try:
        db.session.execute(text('SELECT 1'))
    except SQLAlchemyError as exc:
        app.logger.error("Health check failed: %s", exc)
        return jsonify({'ok': False, 'error': str(exc)}), 500
    return jsonify({'ok': True})


def init_db():
    """Initialise the database tables."""
    db.create_all()
    print("Database initialised.")


def print_parsed_notes(path: str):
    """Parse a notes file and print the months as JSON."""
    with open(path, encoding='utf-8') as fh:
        months = parse_sales_notes(fh.read())
    print(json.dumps([m.to_dict() for m in months], indent=2, ensure_ascii=False))


if __name__ == '__main__':
    parser = argparse.ArgumentParser(description="Rental sales notes service")
    parser.add_argument('--init-db', action='store_true', help='Initialise the database')
    parser.add_argument('--parse-notes', metavar='PATH', help='Parse a sales notes file and print JSON')
    args = parser.parse_args()
    if args.init_db:
        with app.app_context():
            init_db()
    elif args.parse_notes:
        print_parsed_notes(args.parse_notes)
    else:
        app.run(debug=True)
