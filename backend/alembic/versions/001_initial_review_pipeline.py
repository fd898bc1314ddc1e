"""Initial review pipeline schema

Revision ID: 001_initial_review_pipeline
Revises: 
Create Date: 2026-10-17 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '001_initial_review_pipeline'
down_revision = None
branch_labels = None
depends_on = None

loi_status = sa.Enum('DRAFT', 'SUBMITTED', 'UNDER_REVIEW', 'APPROVED', 'DECLINED', name='loi_status')
application_status = sa.Enum(
    'DRAFT', 'SUBMITTED', 'UNDER_REVIEW', 'INFO_REQUESTED', 'APPROVED', 'DECLINED', 'WITHDRAWN',
    name='application_status',
)
user_role = sa.Enum('APPLICANT', 'REVIEWER', 'MANAGER', 'ADMIN', name='user_role')
vote_choice = sa.Enum('APPROVE', 'DECLINE', 'ABSTAIN', name='vote_choice')
communication_direction = sa.Enum('OUTBOUND', 'INBOUND', name='communication_direction')


def upgrade() -> None:
    # Create organizations table
    op.create_table(
        'organizations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('legal_name', sa.String(), nullable=False),
        sa.Column('ein', sa.String(length=20), nullable=True),
        sa.Column('primary_contact_email', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_organizations_id'), 'organizations', ['id'], unique=False)

    # Create grant_cycles table
    op.create_table(
        'grant_cycles',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('cycle', sa.String(length=20), nullable=False),
        sa.Column('year', sa.Integer(), nullable=False),
        sa.Column('loi_deadline', sa.DateTime(timezone=True), nullable=True),
        sa.Column('full_app_deadline', sa.DateTime(timezone=True), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=True, server_default='true'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_grant_cycles_id'), 'grant_cycles', ['id'], unique=False)

    # Create users table
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('email', sa.String(), nullable=False),
        sa.Column('full_name', sa.String(), nullable=True),
        sa.Column('role', user_role, nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=True, server_default='true'),
        sa.Column('organization_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['organization_id'], ['organizations.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_users_id'), 'users', ['id'], unique=False)
    op.create_index(op.f('ix_users_email'), 'users', ['email'], unique=True)
    op.create_index(op.f('ix_users_organization_id'), 'users', ['organization_id'], unique=False)

    # Create letters_of_interest table (FK to applications added below)
    op.create_table(
        'letters_of_interest',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('organization_id', sa.Integer(), nullable=False),
        sa.Column('cycle_id', sa.Integer(), nullable=False),
        sa.Column('status', loi_status, nullable=False),
        sa.Column('primary_contact_email', sa.String(), nullable=True),
        sa.Column('project_title', sa.String(), nullable=True),
        sa.Column('project_description', sa.Text(), nullable=True),
        sa.Column('grant_request_amount', sa.Numeric(12, 2), nullable=True),
        sa.Column('total_project_amount', sa.Numeric(12, 2), nullable=True),
        sa.Column('submitted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('submitted_by_name', sa.String(), nullable=True),
        sa.Column('reviewed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('reviewed_by_id', sa.Integer(), nullable=True),
        sa.Column('reviewed_by_name', sa.String(), nullable=True),
        sa.Column('review_notes', sa.Text(), nullable=True),
        sa.Column('decision_reason', sa.Text(), nullable=True),
        sa.Column('application_id', sa.Integer(), nullable=True),
        sa.Column('released_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('released_by_name', sa.String(), nullable=True),
        sa.Column('notification_sent', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('notification_sent_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('notification_error', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['organization_id'], ['organizations.id'], ),
        sa.ForeignKeyConstraint(['cycle_id'], ['grant_cycles.id'], ),
        sa.ForeignKeyConstraint(['reviewed_by_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('organization_id', 'cycle_id', name='uq_loi_organization_cycle'),
        sa.UniqueConstraint('application_id')
    )
    op.create_index(op.f('ix_letters_of_interest_id'), 'letters_of_interest', ['id'], unique=False)
    op.create_index(op.f('ix_letters_of_interest_organization_id'), 'letters_of_interest', ['organization_id'], unique=False)
    op.create_index(op.f('ix_letters_of_interest_cycle_id'), 'letters_of_interest', ['cycle_id'], unique=False)
    op.create_index(op.f('ix_letters_of_interest_status'), 'letters_of_interest', ['status'], unique=False)
    op.create_index(op.f('ix_letters_of_interest_released_at'), 'letters_of_interest', ['released_at'], unique=False)
    op.create_index('idx_loi_release_pending', 'letters_of_interest', ['status', 'released_at'], unique=False)

    # Create applications table
    op.create_table(
        'applications',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('loi_id', sa.Integer(), nullable=True),
        sa.Column('organization_id', sa.Integer(), nullable=False),
        sa.Column('cycle_id', sa.Integer(), nullable=True),
        sa.Column('status', application_status, nullable=False),
        sa.Column('project_title', sa.String(), nullable=True),
        sa.Column('project_description', sa.Text(), nullable=True),
        sa.Column('amount_requested', sa.Numeric(12, 2), nullable=True),
        sa.Column('total_project_budget', sa.Numeric(12, 2), nullable=True),
        sa.Column('submitted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('decided_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('decided_by_name', sa.String(), nullable=True),
        sa.Column('decision_reason', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['loi_id'], ['letters_of_interest.id'], ),
        sa.ForeignKeyConstraint(['organization_id'], ['organizations.id'], ),
        sa.ForeignKeyConstraint(['cycle_id'], ['grant_cycles.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('loi_id')
    )
    op.create_index(op.f('ix_applications_id'), 'applications', ['id'], unique=False)
    op.create_index(op.f('ix_applications_organization_id'), 'applications', ['organization_id'], unique=False)
    op.create_index(op.f('ix_applications_cycle_id'), 'applications', ['cycle_id'], unique=False)
    op.create_index(op.f('ix_applications_status'), 'applications', ['status'], unique=False)

    op.create_foreign_key(
        'fk_letters_of_interest_application_id',
        'letters_of_interest', 'applications',
        ['application_id'], ['id'],
    )

    # Create status ledgers (append-only)
    op.create_table(
        'loi_status_history',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('loi_id', sa.Integer(), nullable=False),
        sa.Column('previous_status', loi_status, nullable=True),
        sa.Column('new_status', loi_status, nullable=False),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('changed_by_id', sa.Integer(), nullable=True),
        sa.Column('changed_by_name', sa.String(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['loi_id'], ['letters_of_interest.id'], ),
        sa.ForeignKeyConstraint(['changed_by_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_loi_status_history_id'), 'loi_status_history', ['id'], unique=False)
    op.create_index(op.f('ix_loi_status_history_loi_id'), 'loi_status_history', ['loi_id'], unique=False)
    op.create_index(op.f('ix_loi_status_history_created_at'), 'loi_status_history', ['created_at'], unique=False)

    op.create_table(
        'application_status_history',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('application_id', sa.Integer(), nullable=False),
        sa.Column('previous_status', application_status, nullable=True),
        sa.Column('new_status', application_status, nullable=False),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('changed_by_id', sa.Integer(), nullable=True),
        sa.Column('changed_by_name', sa.String(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['application_id'], ['applications.id'], ),
        sa.ForeignKeyConstraint(['changed_by_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_application_status_history_id'), 'application_status_history', ['id'], unique=False)
    op.create_index(op.f('ix_application_status_history_application_id'), 'application_status_history', ['application_id'], unique=False)
    op.create_index(op.f('ix_application_status_history_created_at'), 'application_status_history', ['created_at'], unique=False)

    # Create votes table
    op.create_table(
        'votes',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('application_id', sa.Integer(), nullable=False),
        sa.Column('reviewer_id', sa.Integer(), nullable=False),
        sa.Column('reviewer_name', sa.String(), nullable=False),
        sa.Column('vote', vote_choice, nullable=False),
        sa.Column('reasoning', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['application_id'], ['applications.id'], ),
        sa.ForeignKeyConstraint(['reviewer_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('application_id', 'reviewer_id', name='uq_vote_application_reviewer')
    )
    op.create_index(op.f('ix_votes_id'), 'votes', ['id'], unique=False)
    op.create_index(op.f('ix_votes_application_id'), 'votes', ['application_id'], unique=False)

    # Create budget_assessments table
    op.create_table(
        'budget_assessments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('application_id', sa.Integer(), nullable=False),
        sa.Column('reviewer_id', sa.Integer(), nullable=False),
        sa.Column('reviewer_name', sa.String(), nullable=False),
        sa.Column('budget_reasonableness', sa.Integer(), nullable=True),
        sa.Column('cost_efficiency', sa.Integer(), nullable=True),
        sa.Column('budget_detail', sa.Integer(), nullable=True),
        sa.Column('sustainability', sa.Integer(), nullable=True),
        sa.Column('composite_score', sa.Float(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['application_id'], ['applications.id'], ),
        sa.ForeignKeyConstraint(['reviewer_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('application_id', 'reviewer_id', name='uq_budget_assessment_application_reviewer')
    )
    op.create_index(op.f('ix_budget_assessments_id'), 'budget_assessments', ['id'], unique=False)
    op.create_index(op.f('ix_budget_assessments_application_id'), 'budget_assessments', ['application_id'], unique=False)

    # Create notes table
    op.create_table(
        'notes',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('application_id', sa.Integer(), nullable=False),
        sa.Column('author_id', sa.Integer(), nullable=False),
        sa.Column('author_name', sa.String(), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('is_private', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['application_id'], ['applications.id'], ),
        sa.ForeignKeyConstraint(['author_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_notes_id'), 'notes', ['id'], unique=False)
    op.create_index(op.f('ix_notes_application_id'), 'notes', ['application_id'], unique=False)

    # Create communications table
    op.create_table(
        'communications',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('application_id', sa.Integer(), nullable=False),
        sa.Column('direction', communication_direction, nullable=False),
        sa.Column('subject', sa.String(), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('sent_by_id', sa.Integer(), nullable=True),
        sa.Column('sent_by_name', sa.String(), nullable=False),
        sa.Column('response_required', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('response_deadline', sa.DateTime(timezone=True), nullable=True),
        sa.Column('response_content', sa.Text(), nullable=True),
        sa.Column('response_received_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['application_id'], ['applications.id'], ),
        sa.ForeignKeyConstraint(['sent_by_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_communications_id'), 'communications', ['id'], unique=False)
    op.create_index(op.f('ix_communications_application_id'), 'communications', ['application_id'], unique=False)


def downgrade() -> None:
    op.drop_index(op.f('ix_communications_application_id'), table_name='communications')
    op.drop_index(op.f('ix_communications_id'), table_name='communications')
    op.drop_table('communications')
    op.drop_index(op.f('ix_notes_application_id'), table_name='notes')
    op.drop_index(op.f('ix_notes_id'), table_name='notes')
    op.drop_table('notes')
    op.drop_index(op.f('ix_budget_assessments_application_id'), table_name='budget_assessments')
    op.drop_index(op.f('ix_budget_assessments_id'), table_name='budget_assessments')
    op.drop_table('budget_assessments')
    op.drop_index(op.f('ix_votes_application_id'), table_name='votes')
    op.drop_index(op.f('ix_votes_id'), table_name='votes')
    op.drop_table('votes')
    op.drop_index(op.f('ix_application_status_history_created_at'), table_name='application_status_history')
    op.drop_index(op.f('ix_application_status_history_application_id'), table_name='application_status_history')
    op.drop_index(op.f('ix_application_status_history_id'), table_name='application_status_history')
    op.drop_table('application_status_history')
    op.drop_index(op.f('ix_loi_status_history_created_at'), table_name='loi_status_history')
    op.drop_index(op.f('ix_loi_status_history_loi_id'), table_name='loi_status_history')
    op.drop_index(op.f('ix_loi_status_history_id'), table_name='loi_status_history')
    op.drop_table('loi_status_history')
    op.drop_constraint('fk_letters_of_interest_application_id', 'letters_of_interest', type_='foreignkey')
    op.drop_index(op.f('ix_applications_status'), table_name='applications')
    op.drop_index(op.f('ix_applications_cycle_id'), table_name='applications')
    op.drop_index(op.f('ix_applications_organization_id'), table_name='applications')
    op.drop_index(op.f('ix_applications_id'), table_name='applications')
    op.drop_table('applications')
    op.drop_index('idx_loi_release_pending', table_name='letters_of_interest')
    op.drop_index(op.f('ix_letters_of_interest_released_at'), table_name='letters_of_interest')
    op.drop_index(op.f('ix_letters_of_interest_status'), table_name='letters_of_interest')
    op.drop_index(op.f('ix_letters_of_interest_cycle_id'), table_name='letters_of_interest')
    op.drop_index(op.f('ix_letters_of_interest_organization_id'), table_name='letters_of_interest')
    op.drop_index(op.f('ix_letters_of_interest_id'), table_name='letters_of_interest')
    op.drop_table('letters_of_interest')
    op.drop_index(op.f('ix_users_organization_id'), table_name='users')
    op.drop_index(op.f('ix_users_email'), table_name='users')
    op.drop_index(op.f('ix_users_id'), table_name='users')
    op.drop_table('users')
    op.drop_index(op.f('ix_grant_cycles_id'), table_name='grant_cycles')
    op.drop_table('grant_cycles')
    op.drop_index(op.f('ix_organizations_id'), table_name='organizations')
    op.drop_table('organizations')

    for enum in (communication_direction, vote_choice, user_role, application_status, loi_status):
        enum.drop(op.get_bind(), checkfirst=True)
