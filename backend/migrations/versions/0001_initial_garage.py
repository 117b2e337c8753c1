"""initial repair shop tables

Revision ID: 0001_initial_garage
Revises: 
Create Date: 2026-10-19
"""
from __future__ import annotations
from alembic import op
import sqlalchemy as sa

revision = '0001_initial_garage'
down_revision = None
branch_labels = None
depends_on = None

def upgrade():
    op.create_table('repair_workers',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('worker_type', sa.String(length=16), nullable=False, server_default='repair'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('1')),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now())
    )
    op.create_index('ix_repair_workers_name', 'repair_workers', ['name'])
    op.create_index('ix_repair_workers_is_active', 'repair_workers', ['is_active'])

    op.create_table('app_users',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('username', sa.String(length=64), nullable=False, unique=True),
        sa.Column('display_name', sa.String(length=128), nullable=False),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('role', sa.String(length=32), nullable=False),
        sa.Column('worker_id', sa.Integer(), sa.ForeignKey('repair_workers.id', ondelete='SET NULL'), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=True, server_default=sa.text('1')),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'))
    )
    op.create_index('ix_app_users_username', 'app_users', ['username'])
    op.create_index('ix_app_users_role', 'app_users', ['role'])

    op.create_table('audit_logs',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('actor_user_id', sa.Integer(), nullable=False),
        sa.Column('actor_role', sa.String(length=32), nullable=True),
        sa.Column('actor_worker_id', sa.Integer(), nullable=True),
        sa.Column('actor_name', sa.String(length=120), nullable=True),
        sa.Column('action', sa.String(length=64), nullable=False),
        sa.Column('entity', sa.String(length=64), nullable=True),
        sa.Column('entity_id', sa.String(length=64), nullable=True),
        sa.Column('meta', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False)
    )
    op.create_index('ix_audit_logs_actor_user_id', 'audit_logs', ['actor_user_id'])
    op.create_index('ix_audit_logs_action', 'audit_logs', ['action'])
    op.create_index('ix_audit_logs_actor_worker_id', 'audit_logs', ['actor_worker_id'])
    op.create_index('ix_audit_logs_entity_id', 'audit_logs', ['entity_id'])

    op.create_table('repair_orders',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('code', sa.String(length=32), nullable=True, unique=True),
        sa.Column('license_plate', sa.String(length=32), nullable=False),
        sa.Column('customer_name', sa.String(length=120), nullable=False),
        sa.Column('vehicle_name', sa.String(length=120), nullable=True),
        sa.Column('received_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('expected_return_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('status', sa.String(length=32), nullable=False, server_default='pending'),
        sa.Column('waiting_for_parts', sa.Boolean(), nullable=False, server_default=sa.text('0')),
        sa.Column('parts_order_start_time', sa.DateTime(timezone=True), nullable=True),
        sa.Column('parts_expected_end_time', sa.DateTime(timezone=True), nullable=True),
        sa.Column('parts_note', sa.Text(), nullable=True),
        sa.Column('created_by', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False)
    )
    op.create_index('ix_repair_orders_license_plate', 'repair_orders', ['license_plate'])
    op.create_index('ix_repair_orders_status', 'repair_orders', ['status'])
    op.create_index('ix_repair_orders_created_at', 'repair_orders', ['created_at'])

    op.create_table('repair_items',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('order_id', sa.Integer(), sa.ForeignKey('repair_orders.id', ondelete='CASCADE'), nullable=False),
        sa.Column('parent_id', sa.Integer(), sa.ForeignKey('repair_items.id', ondelete='CASCADE'), nullable=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('status', sa.String(length=32), nullable=False, server_default='pending'),
        sa.Column('repair_type', sa.String(length=16), nullable=True),
        sa.Column('order_index', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('worker_id', sa.Integer(), sa.ForeignKey('repair_workers.id', ondelete='SET NULL'), nullable=True),
        sa.Column('estimated_duration_minutes', sa.Integer(), nullable=True),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False)
    )
    op.create_index('ix_repair_items_order_id', 'repair_items', ['order_id'])
    op.create_index('ix_repair_items_parent_id', 'repair_items', ['parent_id'])
    op.create_index('ix_repair_items_status', 'repair_items', ['status'])
    op.create_index('ix_repair_items_worker_id', 'repair_items', ['worker_id'])

    op.create_table('repair_item_assigned_workers',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('repair_item_id', sa.Integer(), sa.ForeignKey('repair_items.id', ondelete='CASCADE'), nullable=False),
        sa.Column('worker_id', sa.Integer(), sa.ForeignKey('repair_workers.id', ondelete='CASCADE'), nullable=False),
        sa.Column('assigned_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('estimated_duration_minutes', sa.Integer(), nullable=True),
        sa.Column('priority_marked_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('workload_engaged_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('workload_engaged_by', sa.String(length=16), nullable=True),
        sa.UniqueConstraint('repair_item_id', 'worker_id', name='uq_item_worker')
    )
    op.create_index('ix_repair_item_assigned_workers_repair_item_id', 'repair_item_assigned_workers', ['repair_item_id'])
    op.create_index('ix_repair_item_assigned_workers_worker_id', 'repair_item_assigned_workers', ['worker_id'])

    op.create_table('repair_item_transfers',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('repair_item_id', sa.Integer(), sa.ForeignKey('repair_items.id', ondelete='CASCADE'), nullable=False),
        sa.Column('from_worker_id', sa.Integer(), sa.ForeignKey('repair_workers.id'), nullable=False),
        sa.Column('to_worker_id', sa.Integer(), sa.ForeignKey('repair_workers.id'), nullable=False),
        sa.Column('transferred_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True)
    )
    op.create_index('ix_repair_item_transfers_repair_item_id', 'repair_item_transfers', ['repair_item_id'])

    op.create_table('repair_item_images',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('repair_item_id', sa.Integer(), sa.ForeignKey('repair_items.id', ondelete='CASCADE'), nullable=False),
        sa.Column('image_type', sa.String(length=16), nullable=False),
        sa.Column('image_data', sa.Text(), nullable=False),
        sa.Column('captured_at', sa.DateTime(timezone=True), nullable=False)
    )
    op.create_index('ix_repair_item_images_repair_item_id', 'repair_item_images', ['repair_item_id'])


def downgrade():
    for table in ('repair_item_images', 'repair_item_transfers', 'repair_item_assigned_workers',
                  'repair_items', 'repair_orders', 'audit_logs', 'app_users', 'repair_workers'):
        op.drop_table(table)
