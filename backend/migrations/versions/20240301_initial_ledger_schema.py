"""Initial loan ledger schema

Revision ID: 20240301_initial
Revises:
Create Date: 2024-03-01
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20240301_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "clientes",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("nome", sa.String(255), nullable=False),
        sa.Column("tipo", sa.String(64), nullable=False),
        sa.Column("endereco", sa.String(255), nullable=False),
        sa.Column("numero", sa.String(32), nullable=False),
        sa.Column("telefone", sa.String(32), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("nome"),
        sqlite_autoincrement=True,
    )

    op.create_table(
        "usuarios",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("nome", sa.String(128), nullable=False),
        sa.Column("senha_hash", sa.String(255), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("nome"),
        sqlite_autoincrement=True,
    )

    op.create_table(
        "historico",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("cliente_id", sa.Integer(), nullable=False),
        sa.Column("data_emprestimo", sa.String(19), nullable=False),
        sa.Column("data_devolucao", sa.String(19), nullable=True),
        sa.Column("vendedor", sa.String(128), nullable=True),
        sa.Column("marca_casco", sa.String(64), nullable=True),
        sa.Column("tamanho_casco", sa.String(32), nullable=True),
        sa.Column("qtd_casco", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("qtd_casco_devolvido", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("tipo_caixa", sa.String(64), nullable=True),
        sa.Column("qtd_caixa", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("qtd_caixa_devolvido", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("alterado_por", sa.String(128), nullable=True),
        sa.Column("justificativa_alteracao", sa.Text(), nullable=True),
        sa.Column("data_alteracao", sa.String(19), nullable=True),
        sa.ForeignKeyConstraint(["cliente_id"], ["clientes.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("qtd_casco >= 0", name="ck_historico_qtd_casco_nonneg"),
        sa.CheckConstraint("qtd_caixa >= 0", name="ck_historico_qtd_caixa_nonneg"),
        sa.CheckConstraint(
            "qtd_casco_devolvido >= 0 AND qtd_casco_devolvido <= qtd_casco",
            name="ck_historico_casco_returned_range",
        ),
        sa.CheckConstraint(
            "qtd_caixa_devolvido >= 0 AND qtd_caixa_devolvido <= qtd_caixa",
            name="ck_historico_caixa_returned_range",
        ),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("historico", schema=None) as batch_op:
        batch_op.create_index("ix_historico_cliente_id", ["cliente_id"], unique=False)
        batch_op.create_index("ix_historico_loan_timestamp", ["data_emprestimo"], unique=False)
        batch_op.create_index("ix_historico_due_timestamp", ["data_devolucao"], unique=False)

    op.create_table(
        "estoque",
        sa.Column("id", sa.String(64), nullable=False),
        sa.Column("nome", sa.String(255), nullable=False),
        sa.Column("quantidade", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "registros_apagados",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("dados_originais", sa.Text(), nullable=False),
        sa.Column("justificativa", sa.Text(), nullable=False),
        sa.Column("data_apagado", sa.String(19), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("registros_apagados", schema=None) as batch_op:
        batch_op.create_index("ix_registros_apagados_data_apagado", ["data_apagado"], unique=False)

    op.create_table(
        "historico_edicoes",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("historico_id", sa.Integer(), nullable=False),
        sa.Column("dados_antes", sa.Text(), nullable=False),
        sa.Column("dados_depois", sa.Text(), nullable=False),
        sa.Column("justificativa", sa.Text(), nullable=False),
        sa.Column("alterado_por", sa.String(128), nullable=False),
        sa.Column("data_alteracao", sa.String(19), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("historico_edicoes", schema=None) as batch_op:
        batch_op.create_index("ix_historico_edicoes_historico_id", ["historico_id"], unique=False)
        batch_op.create_index("ix_historico_edicoes_data_alteracao", ["data_alteracao"], unique=False)

    op.create_table(
        "clientes_apagados",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("dados_cliente", sa.Text(), nullable=False),
        sa.Column("justificativa", sa.Text(), nullable=False),
        sa.Column("data_apagado", sa.String(19), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("clientes_apagados", schema=None) as batch_op:
        batch_op.create_index("ix_clientes_apagados_data_apagado", ["data_apagado"], unique=False)


def downgrade():
    op.drop_table("clientes_apagados")
    op.drop_table("historico_edicoes")
    op.drop_table("registros_apagados")
    op.drop_table("estoque")
    op.drop_table("historico")
    op.drop_table("usuarios")
    op.drop_table("clientes")
