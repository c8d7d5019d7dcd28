"""Initial case management schema: users, cases, documents, assessments,
activity log, notifications and the domain event outbox.

Revision ID: 20261018_0001
Revises:
Create Date: 2026-10-18 00:00:00
"""

from alembic import op


revision = "20261018_0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.execute('CREATE EXTENSION IF NOT EXISTS "uuid-ossp";')

    op.execute(
        """
        CREATE TABLE IF NOT EXISTS users (
            id UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            email VARCHAR(255) UNIQUE NOT NULL,
            hashed_password VARCHAR(512) NOT NULL,
            first_name VARCHAR(100) NOT NULL,
            last_name VARCHAR(100) NOT NULL,
            phone VARCHAR(20),
            role VARCHAR(20) NOT NULL DEFAULT 'client',
            is_active BOOLEAN NOT NULL DEFAULT TRUE,
            last_login_at TIMESTAMPTZ,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        );
        """
    )

    op.execute(
        """
        CREATE TABLE IF NOT EXISTS cases (
            id UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            case_id VARCHAR(20) UNIQUE NOT NULL,
            user_id UUID NOT NULL REFERENCES users(id),
            assigned_to UUID REFERENCES users(id),
            program_type VARCHAR(10) NOT NULL,
            status VARCHAR(30) NOT NULL DEFAULT 'INITIAL_ASSESSMENT',
            priority VARCHAR(10) NOT NULL DEFAULT 'MEDIUM',
            total_debt NUMERIC(12, 2) NOT NULL CHECK (total_debt > 0),
            tax_years JSONB NOT NULL DEFAULT '[]'::jsonb,
            debt_breakdown JSONB,
            estimated_savings NUMERIC(12, 2),
            proposed_amount NUMERIC(12, 2),
            monthly_payment NUMERIC(10, 2),
            submission_date TIMESTAMPTZ,
            irs_response_date TIMESTAMPTZ,
            resolution_date TIMESTAMPTZ,
            next_deadline TIMESTAMPTZ,
            documents_complete BOOLEAN NOT NULL DEFAULT FALSE,
            document_progress INTEGER NOT NULL DEFAULT 0 CHECK (document_progress BETWEEN 0 AND 100),
            forms_ready BOOLEAN NOT NULL DEFAULT FALSE,
            submitted_to_irs BOOLEAN NOT NULL DEFAULT FALSE,
            tracking_number VARCHAR(100),
            power_of_attorney BOOLEAN NOT NULL DEFAULT FALSE,
            notes TEXT,
            state_history JSONB NOT NULL DEFAULT '[]'::jsonb,
            version INTEGER NOT NULL DEFAULT 1,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        );
        """
    )
    op.execute("CREATE INDEX IF NOT EXISTS idx_cases_user_id ON cases(user_id);")
    op.execute("CREATE INDEX IF NOT EXISTS idx_cases_assigned_to ON cases(assigned_to);")
    op.execute("CREATE INDEX IF NOT EXISTS idx_cases_status ON cases(status);")

    op.execute(
        """
        CREATE TABLE IF NOT EXISTS documents (
            id UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            user_id UUID NOT NULL REFERENCES users(id),
            case_id UUID REFERENCES cases(id),
            document_type VARCHAR(30) NOT NULL,
            tax_year INTEGER,
            description TEXT,
            original_filename VARCHAR(512) NOT NULL,
            storage_key VARCHAR(1024) NOT NULL,
            file_size_bytes BIGINT NOT NULL,
            mime_type VARCHAR(100) NOT NULL,
            file_hash VARCHAR(64),
            status VARCHAR(20) NOT NULL DEFAULT 'PENDING',
            verification_status VARCHAR(20) NOT NULL DEFAULT 'UNVERIFIED',
            uploaded_by UUID NOT NULL,
            verified_by UUID,
            verified_at TIMESTAMPTZ,
            rejection_reason TEXT,
            processed_data JSONB,
            is_confidential BOOLEAN NOT NULL DEFAULT TRUE,
            access_log JSONB NOT NULL DEFAULT '[]'::jsonb,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        );
        """
    )
    op.execute("CREATE INDEX IF NOT EXISTS idx_documents_user_id ON documents(user_id);")
    op.execute("CREATE INDEX IF NOT EXISTS idx_documents_case_id ON documents(case_id);")
    op.execute("CREATE INDEX IF NOT EXISTS idx_documents_type ON documents(document_type);")
    op.execute("CREATE INDEX IF NOT EXISTS idx_documents_status ON documents(status);")
    op.execute("CREATE INDEX IF NOT EXISTS idx_documents_hash ON documents(file_hash);")

    op.execute(
        """
        CREATE TABLE IF NOT EXISTS assessments (
            id UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            user_id UUID NOT NULL REFERENCES users(id),
            case_id UUID REFERENCES cases(id),
            assessment_type VARCHAR(20) NOT NULL DEFAULT 'INITIAL',
            status VARCHAR(20) NOT NULL DEFAULT 'IN_PROGRESS',
            all_returns_filed BOOLEAN,
            unfiled_years JSONB NOT NULL DEFAULT '[]'::jsonb,
            filing_status VARCHAR(20),
            total_tax_debt NUMERIC(12, 2),
            debt_by_year JSONB,
            monthly_income NUMERIC(10, 2),
            monthly_expenses NUMERIC(10, 2),
            disposable_income NUMERIC(10, 2),
            employment_status VARCHAR(20),
            total_assets NUMERIC(12, 2),
            liquid_assets NUMERIC(12, 2),
            special_circumstances JSONB NOT NULL DEFAULT '[]'::jsonb,
            hardship_details TEXT,
            eligibility_results JSONB,
            eligibility_score INTEGER,
            risk_rating VARCHAR(10),
            success_probability INTEGER,
            completed_steps JSONB NOT NULL DEFAULT '[]'::jsonb,
            progress_percentage INTEGER NOT NULL DEFAULT 0,
            completed_at TIMESTAMPTZ,
            reviewed_by UUID,
            reviewed_at TIMESTAMPTZ,
            notes TEXT,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        );
        """
    )
    op.execute("CREATE INDEX IF NOT EXISTS idx_assessments_user_id ON assessments(user_id);")
    op.execute("CREATE INDEX IF NOT EXISTS idx_assessments_case_id ON assessments(case_id);")
    op.execute("CREATE INDEX IF NOT EXISTS idx_assessments_status ON assessments(status);")

    op.execute(
        """
        CREATE TABLE IF NOT EXISTS activity_logs (
            id UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            user_id UUID,
            action VARCHAR(40) NOT NULL,
            entity_type VARCHAR(30),
            entity_id VARCHAR(64),
            description TEXT NOT NULL,
            metadata JSONB,
            severity VARCHAR(10) NOT NULL DEFAULT 'LOW',
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        );
        """
    )
    op.execute("CREATE INDEX IF NOT EXISTS idx_activity_logs_user_id ON activity_logs(user_id);")
    op.execute("CREATE INDEX IF NOT EXISTS idx_activity_logs_action ON activity_logs(action);")
    op.execute("CREATE INDEX IF NOT EXISTS idx_activity_logs_entity ON activity_logs(entity_id);")
    op.execute("CREATE INDEX IF NOT EXISTS idx_activity_logs_created_at ON activity_logs(created_at);")

    op.execute(
        """
        CREATE TABLE IF NOT EXISTS notifications (
            id UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            user_id UUID NOT NULL,
            kind VARCHAR(30) NOT NULL,
            title VARCHAR(255) NOT NULL,
            message TEXT NOT NULL,
            priority VARCHAR(10) NOT NULL DEFAULT 'MEDIUM',
            status VARCHAR(10) NOT NULL DEFAULT 'UNREAD',
            channels JSONB NOT NULL DEFAULT '[]'::jsonb,
            related_entity_type VARCHAR(30),
            related_entity_id VARCHAR(64),
            read_at TIMESTAMPTZ,
            delivered_at TIMESTAMPTZ,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        );
        """
    )
    op.execute("CREATE INDEX IF NOT EXISTS idx_notifications_user_id ON notifications(user_id);")
    op.execute("CREATE INDEX IF NOT EXISTS idx_notifications_status ON notifications(status);")
    op.execute("CREATE INDEX IF NOT EXISTS idx_notifications_created_at ON notifications(created_at);")

    op.execute(
        """
        CREATE TABLE IF NOT EXISTS domain_events (
            id UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            kind VARCHAR(40) NOT NULL,
            payload JSONB NOT NULL,
            status VARCHAR(20) NOT NULL DEFAULT 'queued',
            attempts INTEGER NOT NULL DEFAULT 0,
            max_attempts INTEGER NOT NULL DEFAULT 5,
            error_message TEXT,
            started_at TIMESTAMPTZ,
            completed_at TIMESTAMPTZ,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        );
        """
    )
    op.execute("CREATE INDEX IF NOT EXISTS idx_domain_events_kind ON domain_events(kind);")
    op.execute("CREATE INDEX IF NOT EXISTS idx_domain_events_status_created ON domain_events(status, created_at);")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS domain_events;")
    op.execute("DROP TABLE IF EXISTS notifications;")
    op.execute("DROP TABLE IF EXISTS activity_logs;")
    op.execute("DROP TABLE IF EXISTS assessments;")
    op.execute("DROP TABLE IF EXISTS documents;")
    op.execute("DROP TABLE IF EXISTS cases;")
    op.execute("DROP TABLE IF EXISTS users;")
