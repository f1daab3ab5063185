"""initial schema: install bookkeeping and reference platform tables

Revision ID: 0001a2b3c4d5
Revises:
Create Date: 2026-10-17
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0001a2b3c4d5'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _id() -> sa.Column:
    return sa.Column('id', sa.Integer(), nullable=False)


def upgrade() -> None:
    op.create_table(
        'install_progress',
        _id(),
        sa.Column('fingerprint', sa.String(length=64), nullable=False),
        sa.Column('filename', sa.String(length=255), nullable=False),
        sa.Column('user_id', sa.String(length=64), nullable=False),
        sa.Column('current_step', sa.Integer(), nullable=False),
        sa.Column('max_step', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('modified_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_install_progress_fingerprint'), 'install_progress', ['fingerprint'], unique=True)

    op.create_table(
        'install_runs',
        _id(),
        sa.Column('filename', sa.String(length=255), nullable=False),
        sa.Column('fingerprint', sa.String(length=64), nullable=False),
        sa.Column('user_id', sa.String(length=64), nullable=False),
        sa.Column('progress', sa.Integer(), nullable=False),
        sa.Column('subprogress', sa.Integer(), nullable=False),
        sa.Column('status', sa.Integer(), nullable=False),
        sa.Column(
            'state',
            sa.Enum('running', 'finished', 'reset', name='install_run_state'),
            nullable=False,
        ),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('modified_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_install_runs_filename'), 'install_runs', ['filename'])
    op.create_index(op.f('ix_install_runs_fingerprint'), 'install_runs', ['fingerprint'])
    op.create_index('ix_install_runs_filename_created', 'install_runs', ['filename', 'created_at'])

    op.create_table(
        'course_categories',
        _id(),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('parent', sa.Integer(), nullable=False),
        sa.Column('path', sa.String(length=255), nullable=False),
        sa.Column('visible', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_course_categories_name'), 'course_categories', ['name'])

    op.create_table(
        'courses',
        _id(),
        sa.Column('category', sa.Integer(), nullable=False),
        sa.Column('shortname', sa.String(length=255), nullable=False),
        sa.Column('fullname', sa.String(length=255), nullable=False),
        sa.Column('format', sa.String(length=32), nullable=False),
        sa.Column('visible', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('shortname')
    )
    op.create_index(op.f('ix_courses_category'), 'courses', ['category'])

    op.create_table(
        'modules',
        _id(),
        sa.Column('name', sa.String(length=64), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name')
    )

    op.create_table(
        'course_modules',
        _id(),
        sa.Column('course', sa.Integer(), nullable=False),
        sa.Column('module', sa.Integer(), nullable=False),
        sa.Column('instance', sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_course_modules_course'), 'course_modules', ['course'])

    for activity in ('adaptivequiz', 'quiz'):
        op.create_table(
            activity,
            _id(),
            sa.Column('course', sa.Integer(), nullable=False),
            sa.Column('name', sa.String(length=255), nullable=False),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index(op.f(f'ix_{activity}_course'), activity, ['course'])

    op.create_table(
        'url',
        _id(),
        sa.Column('course', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('externalurl', sa.Text(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_url_course'), 'url', ['course'])

    op.create_table(
        'config_plugins',
        _id(),
        sa.Column('plugin', sa.String(length=100), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('value', sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('plugin', 'name', name='ux_config_plugins_plugin_name')
    )
    op.create_index(op.f('ix_config_plugins_plugin'), 'config_plugins', ['plugin'])

    op.create_table(
        'customfield_category',
        _id(),
        sa.Column('component', sa.String(length=100), nullable=False),
        sa.Column('area', sa.String(length=100), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )

    op.create_table(
        'customfield_field',
        _id(),
        sa.Column('categoryid', sa.Integer(), nullable=False),
        sa.Column('shortname', sa.String(length=100), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('type', sa.String(length=32), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('configdata', sa.JSON(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('shortname')
    )
    op.create_index(op.f('ix_customfield_field_categoryid'), 'customfield_field', ['categoryid'])

    op.create_table(
        'question',
        _id(),
        sa.Column('courseid', sa.Integer(), nullable=False),
        sa.Column('category', sa.String(length=255), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('qtype', sa.String(length=32), nullable=False),
        sa.Column('questiontext', sa.Text(), nullable=False),
        sa.Column('idnumber', sa.String(length=100), nullable=True),
        sa.Column('defaultmark', sa.Float(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_question_courseid'), 'question', ['courseid'])

    op.create_table(
        'catscales',
        _id(),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('parentid', sa.Integer(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_catscales_name'), 'catscales', ['name'])

    op.create_table(
        'cat_tests',
        _id(),
        sa.Column('componentid', sa.Integer(), nullable=False),
        sa.Column('component', sa.String(length=100), nullable=False),
        sa.Column('courseid', sa.Integer(), nullable=False),
        sa.Column('catscaleid', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=True),
        sa.Column('json', sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_cat_tests_courseid'), 'cat_tests', ['courseid'])

    op.create_table(
        'item_params',
        _id(),
        sa.Column('componentid', sa.Integer(), nullable=False),
        sa.Column('componentname', sa.String(length=100), nullable=False),
        sa.Column('model', sa.String(length=32), nullable=False),
        sa.Column('difficulty', sa.Float(), nullable=True),
        sa.Column('discrimination', sa.Float(), nullable=True),
        sa.Column('guessing', sa.Float(), nullable=True),
        sa.Column('timecreated', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_item_params_componentid'), 'item_params', ['componentid'])

    op.create_table(
        'learning_paths',
        _id(),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('json', sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_learning_paths_name'), 'learning_paths', ['name'])

    op.create_table(
        'learning_path_activities',
        _id(),
        sa.Column('course', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('learningpathid', sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_learning_path_activities_course'), 'learning_path_activities', ['course'])
    op.create_index(
        op.f('ix_learning_path_activities_learningpathid'), 'learning_path_activities', ['learningpathid']
    )


def downgrade() -> None:
    for table in (
        'learning_path_activities',
        'learning_paths',
        'item_params',
        'cat_tests',
        'catscales',
        'question',
        'customfield_field',
        'customfield_category',
        'config_plugins',
        'url',
        'quiz',
        'adaptivequiz',
        'course_modules',
        'modules',
        'courses',
        'course_categories',
        'install_runs',
        'install_progress',
    ):
        op.drop_table(table)
    sa.Enum(name='install_run_state').drop(op.get_bind(), checkfirst=True)
