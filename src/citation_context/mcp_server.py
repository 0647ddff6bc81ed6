# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""MCP Server Protocol Layer for citation context.

Translates MCP tool calls into CitationService calls and formats the results.
No validation or extraction logic lives here.
"""

import argparse
import logging
from pathlib import Path
from typing import Any, Dict, Optional

from mcp.server.fastmcp import Context, FastMCP
from mcp.server.session import ServerSession

from citation_context.config import Config
from citation_context.log_config import (
    ensure_data_directories,
    get_default_data_root,
    get_logs_dir,
)
from citation_context.logging_setup import setup_logging
from citation_context.service import CitationService

logger = logging.getLogger(__name__)


class CitationContextMCPServer:
    """MCP protocol layer exposing citation validation and extraction tools.

    Tools:
    - validate_citations: validation verdict for every link in a document
    - extract_links: deduplicated content cited by a document
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        service: Optional[CitationService] = None,
        data_root: Optional[Path] = None,
    ):
        """Initialize MCP server.

        Args:
            config: Configuration object. If None, loads from default location.
            service: Service layer instance. If None, creates default service.
            data_root: Root directory for persisted data. If None, uses ~/.citation_context/
        """
        if config is None:
            config = Config()
        self.config = config

        self.data_root = data_root or get_default_data_root()
        ensure_data_directories(self.data_root)

        if service is None:
            service = CitationService(config=config, data_root=self.data_root)
        self.service = service

        self.mcp = FastMCP(name="citation-context")
        self._register_tools()

        logger.info("CitationContextMCPServer initialized")

    def _register_tools(self) -> None:
        @self.mcp.tool()
        async def validate_citations(
            file_path: str,
            ctx: Context[ServerSession, None],
            scope_folder: Optional[str] = None,
        ) -> Dict[str, Any]:
            """Validate every citation link in a markdown document.

            Args:
                file_path: Path to the markdown document to check
                ctx: MCP context for logging
                scope_folder: Folder searched for targets given by filename only

            Returns:
                Dictionary with:
                - links: every link with its validation status, error and suggestion
                - summary: total, valid, warnings and errors counts
            """
            await ctx.info(f"Validating citations in {file_path}")
            try:
                result = await self.service.validate(file_path, scope_folder=scope_folder)
            except FileNotFoundError:
                await ctx.error(f"File not found: {file_path}")
                raise
            except Exception as e:
                await ctx.error(f"Error validating {file_path}: {e}")
                raise

            summary = result.summary
            await ctx.info(
                f"Validated {summary.total} links: {summary.errors} errors, "
                f"{summary.warnings} warnings"
            )
            return result.to_dict()

        @self.mcp.tool()
        async def extract_links(
            file_path: str,
            ctx: Context[ServerSession, None],
            full_files: bool = False,
            scope_folder: Optional[str] = None,
            session_id: Optional[str] = None,
        ) -> Dict[str, Any]:
            """Extract the content cited by a markdown document.

            Section and block links are extracted by default; full-document links
            only with full_files. Identical content is returned once.

            Args:
                file_path: Path to the source markdown document
                ctx: MCP context for logging
                full_files: Also extract links that point at whole documents
                scope_folder: Folder searched for targets given by filename only
                session_id: When set, content already extracted in this session
                    is not returned again

            Returns:
                Dictionary with:
                - extractedContentBlocks: content id -> content and citing links
                - outgoingLinksReport: per-link status and reason
                - stats: link counts, duplicates and tokens saved
                - alreadyExtracted: true (and nothing else) on a session repeat
            """
            await ctx.info(f"Extracting links from {file_path}")
            try:
                if session_id:
                    report = await self.service.extract_for_session(
                        session_id, file_path, full_files=full_files, scope_folder=scope_folder
                    )
                else:
                    report = await self.service.extract(
                        file_path, full_files=full_files, scope_folder=scope_folder
                    )
            except FileNotFoundError:
                await ctx.error(f"File not found: {file_path}")
                raise
            except Exception as e:
                await ctx.error(f"Error extracting links from {file_path}: {e}")
                raise

            if report is None:
                await ctx.info(f"Session {session_id} already extracted {file_path}")
                return {"alreadyExtracted": True}

            await ctx.info(
                f"Extracted {report.stats.extracted}/{report.stats.total_links} links, "
                f"{report.stats.unique_content} unique blocks"
            )
            return report.to_dict()

        logger.info("MCP tools registered: validate_citations, extract_links")

    def run(self, transport: str = "stdio") -> None:
        """Run the MCP server.

        Args:
            transport: "stdio" (default), "streamable-http" or "sse"
        """
        logger.info(f"Starting MCP server with {transport} transport")
        self.mcp.run(transport=transport)  # type: ignore[arg-type]


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Citation context MCP server",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--data-root",
        type=Path,
        default=None,
        help=f"Root directory for logs and session markers. Default: {get_default_data_root()}",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Configuration file. Default: ./.citation_context.yml",
    )
    parser.add_argument(
        "--transport",
        type=str,
        choices=["stdio", "streamable-http", "sse"],
        default="stdio",
        help="Transport type for MCP server. Default: stdio",
    )
    return parser.parse_args()


def main() -> None:
    """Main entry point for the MCP server."""
    args = parse_args()

    data_root = args.data_root or get_default_data_root()
    ensure_data_directories(data_root)
    setup_logging(log_dir=get_logs_dir(data_root), console_output=True)

    server = CitationContextMCPServer(config=Config(args.config), data_root=data_root)
    logger.info(f"Starting MCP server with data_root={server.data_root}")
    server.run(transport=args.transport)


if __name__ == "__main__":
    main()
