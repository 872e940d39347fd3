#!/usr/bin/env python3
"""
Report Template Migration Controller
Copies service report template layouts from a source org to a target org
"""

import argparse
import sys
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from .browser.template_editor import TemplateEditorSession
from .catalog.tooling_client import ToolingCatalog
from .config import DEFAULT_CONFIG_FILE, load_config, load_environment
from .core.exceptions import ConfigurationError, ExtractionError, MigrationError
from .core.layout_blob import rewrite_layout, scan_field_references
from .core.models import SUPPORTED_SUBTYPES, report_version_name
from .core.schema_resolver import SchemaResolver
from .utils.pipeline_utils import log_errors, save_post_data, setup_logging


def connect_catalog(org, api_version: str) -> ToolingCatalog:
    return ToolingCatalog.connect(org, api_version=api_version)


class MigrationController:
    """Runs the migration stages in order, passing each stage's output to the next"""

    def __init__(self, config, orgs: Dict, log_dir: Optional[Path] = None,
                 output_dir: Optional[Path] = None, dry_run: bool = False,
                 session_factory=TemplateEditorSession, catalog_factory=connect_catalog):
        self.config = config
        self.orgs = orgs
        self.dry_run = dry_run
        self.output_dir = Path(output_dir) if output_dir else Path.cwd()
        self.error_log = Path(config.error_log_filename)
        self.session_factory = session_factory
        self.catalog_factory = catalog_factory
        self.logger = setup_logging('MIGRATION_CONTROLLER', log_dir)
        self.execution_report = {
            'start_time': datetime.now().isoformat(),
            'overall_status': 'running',
            'stage': None,
            'dry_run': dry_run,
            'reports': list(config.report_names),
            'subtypes': list(config.subtypes),
            'layouts_captured': 0,
            'field_references': 0,
            'fields_mapped': 0,
            'layouts_deployed': 0,
            'errors': []
        }

    def set_stage(self, stage: str):
        self.execution_report['stage'] = stage
        self.logger.info(f"➡️ {stage.replace('_', ' ')}")

    def report_versions(self) -> List[Tuple[str, str]]:
        """(report, subtype) pairs, subtype-major like the editor is driven"""
        return [(report, subtype)
                for subtype in SUPPORTED_SUBTYPES if subtype in self.config.subtypes
                for report in self.config.report_names]

    def connect_catalogs(self):
        source = self.catalog_factory(self.orgs['source'], self.config.api_version)
        target = self.catalog_factory(self.orgs['target'], self.config.api_version)
        return source, target

    def dump_layout(self, version: str, org_label: str, layout: str):
        if self.config.write_post_data:
            path = save_post_data(version, org_label, layout, self.output_dir)
            if path:
                self.logger.info(f"Wrote {path}")

    def capture_layouts(self, session, links: Dict[str, str]) -> Dict[str, str]:
        """Capture the posted layout of every report version in the source org"""
        layouts = {}
        missing = []

        for report, subtype in self.report_versions():
            version = report_version_name(report, subtype)
            self.logger.info(f"Getting layout for {report}, subtype {SUPPORTED_SUBTYPES[subtype]}")

            layout = session.capture_layout('source', links[report], subtype)
            if layout is None:
                missing.append(f"no layout data captured for {version} in source org")
                continue

            layouts[version] = layout
            self.dump_layout(version, 'source', layout)

        session.cleanup_pages()
        self.execution_report['layouts_captured'] = len(layouts)

        if missing:
            raise ExtractionError(missing)
        return layouts

    def rewrite_layouts(self, layouts: Dict[str, str], id_map: Dict[str, str]) -> Dict[str, str]:
        rewritten = {}
        for version, layout in layouts.items():
            found = sorted(scan_field_references([layout]))
            self.logger.info(f"Custom field ids found in source org for {version}: {found}")
            rewritten[version] = rewrite_layout(layout, id_map, self.config.image_policy)
        return rewritten

    def deploy_layouts(self, session, links: Dict[str, str], layouts: Dict[str, str]) -> List[str]:
        """Submit rewritten layouts through the target org's editor"""
        deployed = []
        failed = []

        for report, subtype in self.report_versions():
            version = report_version_name(report, subtype)
            if version not in layouts:
                continue

            self.logger.info(f"Deploying {version} to target org")
            if session.submit_layout('target', links[report], subtype, layouts[version]):
                deployed.append(version)
                self.dump_layout(version, 'target', layouts[version])
                self.logger.info(f"✅ Deployed {version}")
            else:
                failed.append(f"layout for {version} was not submitted to target org")

        session.cleanup_pages()
        self.execution_report['layouts_deployed'] = len(deployed)

        if failed:
            raise ExtractionError(failed)
        return deployed

    def run_migration(self) -> Dict:
        """Execute the complete migration workflow"""

        try:
            self.logger.info("🚀 Starting report template migration")

            self.set_stage('catalog_login')
            source_catalog, target_catalog = self.connect_catalogs()

            with self.session_factory(self.config, self.orgs) as session:
                self.set_stage('browser_login')
                session.login('source')
                session.pause()
                session.login('target')

                self.set_stage('source_report_links')
                source_links = session.report_links('source', self.config.report_names)

                self.set_stage('capture_source_layouts')
                source_layouts = self.capture_layouts(session, source_links)

                self.set_stage('resolve_field_ids')
                references = scan_field_references(source_layouts.values())
                self.execution_report['field_references'] = len(references)
                id_map = SchemaResolver(source_catalog, target_catalog).resolve(references)
                self.execution_report['fields_mapped'] = len(id_map)

                self.set_stage('rewrite_layouts')
                target_layouts = self.rewrite_layouts(source_layouts, id_map)

                if self.dry_run:
                    self.logger.info("Dry run, nothing deployed to target org")
                    for version, layout in target_layouts.items():
                        self.dump_layout(version, 'target', layout)
                else:
                    # Nothing is written to the target org until every field is resolved
                    if self.config.create_reports_in_target:
                        self.set_stage('create_target_reports')
                        for report in self.config.report_names:
                            session.create_report(report, 'target')

                    self.set_stage('target_report_links')
                    target_links = session.report_links('target', self.config.report_names)

                    self.set_stage('deploy_layouts')
                    self.deploy_layouts(session, target_links, target_layouts)

            self.execution_report['overall_status'] = 'success'
            self.logger.info("🎉 ALL DONE!")

        except MigrationError as e:
            self.execution_report['overall_status'] = 'failed'
            self.execution_report['errors'].extend(e.messages)
            log_errors(e.messages, self.error_log, self.logger)

        except Exception as e:
            message = f"Critical migration error: {e}"
            self.execution_report['overall_status'] = 'error'
            self.execution_report['errors'].append(message)
            log_errors([message], self.error_log, self.logger)

        finally:
            end_time = datetime.now()
            self.execution_report['end_time'] = end_time.isoformat()
            self.execution_report['total_duration'] = (
                end_time - datetime.fromisoformat(self.execution_report['start_time'])
            ).total_seconds()

        return self.execution_report


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description='Migrate service report templates between orgs')
    parser.add_argument('--config', default=DEFAULT_CONFIG_FILE, help='YAML run configuration')
    parser.add_argument('--env-file', help='.env file with org credentials')
    parser.add_argument('--log-dir', default='logs', help='Directory for log files')
    parser.add_argument('--output-dir', default='.', help='Directory for POST data dumps')
    parser.add_argument('--subtypes', nargs='+', choices=list(SUPPORTED_SUBTYPES),
                        help='Report subtypes to migrate (overrides the config file)')
    parser.add_argument('--dry-run', action='store_true',
                        help='Capture and rewrite layouts without deploying them')

    browser_mode = parser.add_mutually_exclusive_group()
    browser_mode.add_argument('--headless', dest='headless', action='store_true', default=None,
                              help='Run the browser in the background')
    browser_mode.add_argument('--show-browser', dest='headless', action='store_false',
                              help='Show the browser window')

    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    """Main execution function"""

    args = parse_args(argv)
    config = None

    try:
        config = load_config(args.config)
        if args.subtypes:
            config.subtypes = [s for s in SUPPORTED_SUBTYPES if s in args.subtypes]
        if args.headless is not None:
            config.headless = args.headless
        orgs = load_environment(args.env_file)
    except ConfigurationError as e:
        setup_logging('MIGRATION_CONTROLLER', args.log_dir)
        error_log = config.error_log_filename if config else 'errors.log'
        log_errors(e.messages, Path(error_log))
        return 1

    controller = MigrationController(
        config, orgs,
        log_dir=args.log_dir,
        output_dir=args.output_dir,
        dry_run=args.dry_run,
    )
    result = controller.run_migration()

    # Print summary
    print(f"\n{'='*60}")
    print("🎯 MIGRATION SUMMARY")
    print(f"{'='*60}")
    print(f"Status: {result['overall_status'].upper()}")
    print(f"Layouts captured: {result['layouts_captured']}")
    print(f"Custom fields mapped: {result['fields_mapped']}/{result['field_references']}")
    print(f"Layouts deployed: {result['layouts_deployed']}")
    print(f"Duration: {result.get('total_duration', 0):.1f} seconds")

    if result.get('errors'):
        print(f"\n⚠️ Errors ({len(result['errors'])}):")
        for error in result['errors']:
            print(f"  - {error}")

    return 0 if result['overall_status'] == 'success' else 1


if __name__ == "__main__":
    sys.exit(main())
