"""CLI entry point: python -m solrwrapper <command> ...

Commands mirror the wrapper's operations: ``query``, ``get``, ``index``,
``commit``, ``delete`` and ``health``. Connection settings come from the
``SOLRWRAPPER_*`` environment variables unless given as flags.
"""

import argparse
import json
import logging
import sys

from solrwrapper.config import SolrConfig
from solrwrapper.logging import bind_request_id, configure_logging
from solrwrapper.models import SolrError
from solrwrapper.wrapper import SolrWrapper


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="solrwrapper",
        description="Query and update a Solr core (remote or embedded)",
    )
    parser.add_argument("--url", type=str, default=None, help="Remote core URL")
    parser.add_argument("--port", type=int, default=None, help="Server port")
    parser.add_argument(
        "--embedded", action="store_true", default=None, help="Use an in-process core"
    )
    parser.add_argument("--core", type=str, default=None, help="Embedded core directory")
    parser.add_argument(
        "--verbose", "-v", action="store_true", help="Enable DEBUG-level logging to stderr"
    )
    parser.add_argument(
        "--json-log", action="store_true", help="Emit JSON log lines (default: text)"
    )

    sub = parser.add_subparsers(dest="command", required=True)

    query = sub.add_parser("query", help="Run a query and print matching documents")
    query.add_argument("text", nargs="+", help="Query text")
    query.add_argument("--rows", type=int, default=None, help="Max documents to return")
    query.add_argument("--fields", type=str, default=None, help="Comma-separated field list")

    get = sub.add_parser("get", help="Print one field of one document")
    get.add_argument("doc_id", help="Document id")
    get.add_argument("--field", type=str, default="text", help="Field name (default: text)")

    index = sub.add_parser("index", help="Index documents from a JSON file ('-' for stdin)")
    index.add_argument("file", help="JSON object or list of objects")
    index.add_argument("--commit", action="store_true", help="Commit after indexing")

    sub.add_parser("commit", help="Commit pending changes")

    delete = sub.add_parser("delete", help="Delete documents matching a query")
    delete.add_argument("query", nargs="+", help="Delete query")
    delete.add_argument("--commit", action="store_true", help="Commit after deleting")

    sub.add_parser("health", help="Report engine status")
    return parser


def _load_documents(path: str) -> list:
    if path == "-":
        data = json.load(sys.stdin)
    else:
        with open(path, encoding="utf-8") as fh:
            data = json.load(fh)
    return data if isinstance(data, list) else [data]


def _run(solr: SolrWrapper, args: argparse.Namespace) -> object:
    if args.command == "query":
        fields = args.fields.split(",") if args.fields else None
        return solr.run_query(" ".join(args.text), args.rows, fields).to_dict()
    if args.command == "get":
        return {"id": args.doc_id, args.field: solr.get_field_value(args.doc_id, args.field)}
    if args.command == "index":
        docs = _load_documents(args.file)
        solr.index_documents(docs)
        if args.commit:
            solr.commit()
        return {"indexed": len(docs), "committed": args.commit}
    if args.command == "commit":
        solr.commit()
        return {"committed": True}
    if args.command == "delete":
        solr.delete_by_query(" ".join(args.query))
        if args.commit:
            solr.commit()
        return {"deleted_query": " ".join(args.query), "committed": args.commit}
    return solr.check_health()


def main() -> None:
    args = _build_parser().parse_args()

    level = logging.DEBUG if args.verbose else logging.INFO
    configure_logging(level=level, json_format=args.json_log)
    bind_request_id()

    try:
        config = SolrConfig.from_env(
            server_url=args.url, server_port=args.port, embedded=args.embedded, core=args.core
        )
        with SolrWrapper(config) as solr:
            output = _run(solr, args)
    except (SolrError, ValueError, TypeError, OSError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)

    print(json.dumps(output, indent=2, default=str))


if __name__ == "__main__":
    main()
