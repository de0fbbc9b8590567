"""Esquema local inicial: cola de sync + entidades sincronizables

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '0001_initial'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

SYNC_STATUS = sa.Enum('SYNCED', 'PENDING_CREATE', 'PENDING_UPDATE', name='entitysyncstatus')


def _timestamps_and_sync() -> list[sa.Column]:
    return [
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.Column('sync_status', SYNC_STATUS, nullable=False),
    ]


def upgrade() -> None:
    # 1. Cola de mutaciones
    op.create_table(
        'sync_queue',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('entity_type', sa.String(length=50), nullable=False,
                  comment='client, horse, service_price, appointment, invoice'),
        sa.Column('entity_id', sa.String(length=36), nullable=False),
        sa.Column('operation', sa.Enum('CREATE', 'UPDATE', 'DELETE', name='syncoperation'),
                  nullable=False),
        sa.Column('payload', sa.JSON(), nullable=False),
        sa.Column('priority', sa.Integer(), nullable=False),
        sa.Column('status', sa.Enum('PENDING', 'COMPLETED', 'FAILED', name='queuestatus'),
                  nullable=False),
        sa.Column('retry_count', sa.Integer(), nullable=False),
        sa.Column('error_message', sa.String(length=2000), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )
    op.create_index('idx_sync_queue_entity', 'sync_queue', ['entity_type', 'entity_id'])
    op.create_index('idx_sync_queue_status', 'sync_queue', ['status'])
    op.create_index('idx_sync_queue_created', 'sync_queue', ['created_at'])

    # 2. Clientes
    op.create_table(
        'clients',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('user_id', sa.String(length=36), nullable=False),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('first_name', sa.String(length=100), nullable=False),
        sa.Column('last_name', sa.String(length=100), nullable=True),
        sa.Column('business_name', sa.String(length=200), nullable=True),
        sa.Column('phone', sa.String(length=30), nullable=False),
        sa.Column('email', sa.String(length=200), nullable=True),
        sa.Column('address', sa.String(length=500), nullable=True),
        sa.Column('city', sa.String(length=100), nullable=True),
        sa.Column('state', sa.String(length=100), nullable=True),
        sa.Column('zip_code', sa.String(length=20), nullable=True),
        sa.Column('access_notes', sa.Text(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('reminder_preference', sa.String(length=20), nullable=True),
        sa.Column('reminder_hours', sa.Integer(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        *_timestamps_and_sync(),
    )
    op.create_index('idx_client_user_active', 'clients', ['user_id', 'is_active'])
    op.create_index('idx_client_name', 'clients', ['name'])

    # 3. Caballos
    op.create_table(
        'horses',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('user_id', sa.String(length=36), nullable=False),
        sa.Column('client_id', sa.String(length=36),
                  sa.ForeignKey('clients.id', ondelete='CASCADE'), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('breed', sa.String(length=100), nullable=True),
        sa.Column('color', sa.String(length=50), nullable=True),
        sa.Column('age', sa.Integer(), nullable=True),
        sa.Column('temperament', sa.String(length=30), nullable=True),
        sa.Column('medical_notes', sa.Text(), nullable=True),
        sa.Column('default_service_type', sa.String(length=30), nullable=True),
        sa.Column('shoeing_cycle_weeks', sa.Integer(), nullable=True),
        sa.Column('last_service_date', sa.Date(), nullable=True),
        sa.Column('next_due_date', sa.Date(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        *_timestamps_and_sync(),
    )
    op.create_index('idx_horse_client', 'horses', ['client_id'])
    op.create_index('idx_horse_next_due', 'horses', ['next_due_date'])

    # 4. Lista de precios
    op.create_table(
        'service_prices',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('user_id', sa.String(length=36), nullable=False),
        sa.Column('service_type', sa.String(length=30), nullable=False,
                  comment='TRIM, FRONT_SHOES, FULL_SET, CORRECTIVE, RESET, PULL_SHOES, CUSTOM'),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('description', sa.String(length=500), nullable=True),
        sa.Column('price', sa.Numeric(precision=10, scale=2), nullable=True),
        sa.Column('duration_minutes', sa.Integer(), nullable=True),
        sa.Column('display_order', sa.Integer(), nullable=True),
        sa.Column('is_built_in', sa.Boolean(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        *_timestamps_and_sync(),
    )
    op.create_index('idx_service_price_user', 'service_prices', ['user_id'])

    # 5. Citas + caballos asignados
    op.create_table(
        'appointments',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('user_id', sa.String(length=36), nullable=False),
        sa.Column('client_id', sa.String(length=36),
                  sa.ForeignKey('clients.id', ondelete='CASCADE'), nullable=False),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('start_time', sa.Time(), nullable=False),
        sa.Column('end_time', sa.Time(), nullable=True),
        sa.Column('duration_minutes', sa.Integer(), nullable=True),
        sa.Column('status', sa.Enum(
            'SCHEDULED', 'CONFIRMED', 'IN_PROGRESS', 'COMPLETED', 'CANCELLED', 'NO_SHOW',
            name='appointmentstatus',
        ), nullable=False),
        sa.Column('address', sa.String(length=500), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('total_price', sa.Numeric(precision=10, scale=2), nullable=True),
        sa.Column('reminder_sent', sa.Boolean(), nullable=True),
        sa.Column('confirmation_received', sa.Boolean(), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(), nullable=True),
        sa.Column('cancellation_reason', sa.String(length=500), nullable=True),
        *_timestamps_and_sync(),
    )
    op.create_index('idx_appointment_user_date', 'appointments', ['user_id', 'date'])
    op.create_index('idx_appointment_client', 'appointments', ['client_id'])
    op.create_index('idx_appointment_status', 'appointments', ['status'])

    op.create_table(
        'appointment_horses',
        sa.Column('appointment_id', sa.String(length=36),
                  sa.ForeignKey('appointments.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('horse_id', sa.String(length=36), primary_key=True),
        sa.Column('service_type', sa.String(length=30), nullable=False),
        sa.Column('price', sa.Numeric(precision=10, scale=2), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
    )
    op.create_index('idx_appointment_horse_horse', 'appointment_horses', ['horse_id'])

    # 6. Facturas + ítems
    op.create_table(
        'invoices',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('user_id', sa.String(length=36), nullable=False),
        sa.Column('client_id', sa.String(length=36),
                  sa.ForeignKey('clients.id', ondelete='CASCADE'), nullable=False),
        sa.Column('appointment_id', sa.String(length=36), nullable=True,
                  comment='Cita facturada (opcional)'),
        sa.Column('invoice_number', sa.String(length=30), nullable=False),
        sa.Column('invoice_date', sa.Date(), nullable=False),
        sa.Column('due_date', sa.Date(), nullable=False),
        sa.Column('subtotal', sa.Numeric(precision=10, scale=2), nullable=True),
        sa.Column('tax', sa.Numeric(precision=10, scale=2), nullable=True),
        sa.Column('total', sa.Numeric(precision=10, scale=2), nullable=True),
        sa.Column('status', sa.Enum(
            'DRAFT', 'SENT', 'PAID', 'OVERDUE', 'CANCELLED', name='invoicestatus',
        ), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('payment_method', sa.String(length=30), nullable=True),
        sa.Column('paid_at', sa.DateTime(), nullable=True),
        sa.Column('sent_at', sa.DateTime(), nullable=True),
        *_timestamps_and_sync(),
    )
    op.create_index('idx_invoice_client', 'invoices', ['client_id'])
    op.create_index('idx_invoice_status', 'invoices', ['status'])
    op.create_index('idx_invoice_date', 'invoices', ['invoice_date'])

    op.create_table(
        'invoice_items',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('invoice_id', sa.String(length=36),
                  sa.ForeignKey('invoices.id', ondelete='CASCADE'), nullable=False),
        sa.Column('horse_name', sa.String(length=100), nullable=False),
        sa.Column('service_type', sa.String(length=30), nullable=False),
        sa.Column('description', sa.String(length=500), nullable=True),
        sa.Column('quantity', sa.Integer(), nullable=True),
        sa.Column('unit_price', sa.Numeric(precision=10, scale=2), nullable=True),
        sa.Column('total', sa.Numeric(precision=10, scale=2), nullable=True),
    )
    op.create_index('idx_invoice_item_invoice', 'invoice_items', ['invoice_id'])


def downgrade() -> None:
    op.drop_table('invoice_items')
    op.drop_table('invoices')
    op.drop_table('appointment_horses')
    op.drop_table('appointments')
    op.drop_table('service_prices')
    op.drop_table('horses')
    op.drop_table('clients')
    op.drop_table('sync_queue')
