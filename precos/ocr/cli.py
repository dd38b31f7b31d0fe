"""CLI entry point for the OCR ingestion pipeline."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv

from .config import load_config
from .pipeline import BatchOrchestrator, BatchRequestError


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="precos",
        description="Comparador de preços: ingestão de fotos de prateleira/panfleto via OCR",
    )
    parser.add_argument(
        "--config",
        "-c",
        type=str,
        default=None,
        help="Caminho do arquivo de configuração (TOML)",
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true", help="Log detalhado (DEBUG)"
    )

    sub = parser.add_subparsers(dest="command")

    # serve
    sub.add_parser("serve", help="Inicia a API HTTP")

    # supermarket-add
    sm_parser = sub.add_parser("supermarket-add", help="Cadastra um supermercado")
    sm_parser.add_argument("name", type=str, help="Nome do supermercado")
    sm_parser.add_argument("--city", type=str, default=None, help="Cidade")

    # upload
    up_parser = sub.add_parser("upload", help="Cria um lote com imagens e processa")
    up_parser.add_argument("images", type=str, nargs="+", help="Arquivos de imagem")
    up_parser.add_argument(
        "--supermarket", "-s", type=str, required=True, help="ID do supermercado"
    )
    up_parser.add_argument("--uploaded-by", type=str, default=None, help="Usuário responsável")
    up_parser.add_argument(
        "--no-process", action="store_true", help="Apenas cria o lote, sem processar"
    )

    # process
    proc_parser = sub.add_parser("process", help="Processa um lote já enviado")
    proc_parser.add_argument("paths", type=str, nargs="+", help="Caminhos no armazenamento")
    proc_parser.add_argument("--batch", "-b", type=str, required=True, help="ID do lote")
    proc_parser.add_argument(
        "--supermarket", "-s", type=str, required=True, help="ID do supermercado"
    )

    # batches
    b_parser = sub.add_parser("batches", help="Lista os lotes recentes")
    b_parser.add_argument("--limit", type=int, default=20)
    b_parser.add_argument("--json", action="store_true", help="Saída em JSON")

    # items
    i_parser = sub.add_parser("items", help="Lista os itens de OCR para revisão")
    i_parser.add_argument("--batch", "-b", type=str, default=None, help="Filtra por lote")
    i_parser.add_argument("--pending", action="store_true", help="Somente pendentes")
    i_parser.add_argument("--limit", type=int, default=50)
    i_parser.add_argument("--json", action="store_true", help="Saída em JSON")

    # match
    m_parser = sub.add_parser("match", help="Associa um item de OCR a um produto")
    m_parser.add_argument("item_id", type=str)
    m_parser.add_argument("product_id", type=str)

    # prices
    p_parser = sub.add_parser("prices", help="Preços mais recentes de um supermercado")
    p_parser.add_argument("supermarket_id", type=str)
    p_parser.add_argument("--json", action="store_true", help="Saída em JSON")

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    load_dotenv()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    config = load_config(args.config)

    if args.command == "serve":
        _cmd_serve(config)
        return

    orchestrator = BatchOrchestrator(config)
    try:
        match args.command:
            case "supermarket-add":
                _cmd_supermarket_add(orchestrator, args)
            case "upload":
                asyncio.run(_cmd_upload(orchestrator, args))
            case "process":
                asyncio.run(_cmd_process(orchestrator, args))
            case "batches":
                _cmd_batches(orchestrator, args)
            case "items":
                _cmd_items(orchestrator, args)
            case "match":
                _cmd_match(orchestrator, args)
            case "prices":
                _cmd_prices(orchestrator, args)
    finally:
        orchestrator.close()


def _cmd_serve(config) -> None:
    try:
        import uvicorn
    except ImportError:
        raise ImportError("uvicorn is required: pip install uvicorn") from None

    from .api import create_app

    uvicorn.run(create_app(config), host=config.server.host, port=config.server.port)


def _cmd_supermarket_add(orchestrator: BatchOrchestrator, args) -> None:
    supermarket_id = orchestrator.catalog.add_supermarket(args.name, city=args.city)
    print(supermarket_id)


async def _cmd_upload(orchestrator: BatchOrchestrator, args) -> None:
    files: list[tuple[str, bytes]] = []
    for name in args.images:
        path = Path(name)
        if not path.exists():
            print(f"Arquivo não encontrado: {path}", file=sys.stderr)
            sys.exit(1)
        files.append((path.name, path.read_bytes()))

    try:
        request = orchestrator.upload_batch(
            files, args.supermarket, uploaded_by=args.uploaded_by
        )
    except BatchRequestError as e:
        print(str(e), file=sys.stderr)
        sys.exit(1)
    print(f"Lote criado: {request.batch_id} ({len(request.image_paths)} imagem(ns))")

    if args.no_process:
        return

    status_code, payload = await orchestrator.handle(
        {
            "batchId": request.batch_id,
            "imageFiles": [{"path": p} for p in request.image_paths],
            "supermarketId": request.supermarket_id,
        }
    )
    print(json.dumps(payload, ensure_ascii=False, indent=2))
    if status_code != 200:
        sys.exit(1)


async def _cmd_process(orchestrator: BatchOrchestrator, args) -> None:
    status_code, payload = await orchestrator.handle(
        {
            "batchId": args.batch,
            "imageFiles": [{"path": p} for p in args.paths],
            "supermarketId": args.supermarket,
        }
    )
    print(json.dumps(payload, ensure_ascii=False, indent=2))
    if status_code != 200:
        sys.exit(1)


def _cmd_batches(orchestrator: BatchOrchestrator, args) -> None:
    batches = orchestrator.batches.list_batches(limit=args.limit)
    if args.json:
        print(json.dumps(batches, ensure_ascii=False, indent=2))
        return
    if not batches:
        print("Nenhum lote enviado")
        return
    for b in batches:
        errors = len((b.get("meta") or {}).get("errors", []))
        suffix = f"  ({errors} erro(s))" if errors else ""
        print(f"  {b['id']}  {b['status']:<10} {b['created_at']}{suffix}")


def _cmd_items(orchestrator: BatchOrchestrator, args) -> None:
    items = orchestrator.batches.list_items(
        batch_id=args.batch, pending_only=args.pending, limit=args.limit
    )
    if args.json:
        print(json.dumps(items, ensure_ascii=False, indent=2))
        return
    if not items:
        print("Nenhum item encontrado")
        return
    for i in items:
        match_label = i["product_name"] or "pendente"
        print(f"  {i['id']}  {i['confidence']:.0%}  {i['raw_text']!r} → {match_label}")


def _cmd_match(orchestrator: BatchOrchestrator, args) -> None:
    if orchestrator.catalog.get_product(args.product_id) is None:
        print(f"Produto não encontrado: {args.product_id}", file=sys.stderr)
        sys.exit(1)
    if orchestrator.batches.assign_product(args.item_id, args.product_id) == 0:
        print(f"Item não encontrado: {args.item_id}", file=sys.stderr)
        sys.exit(1)
    print("Item associado")


def _cmd_prices(orchestrator: BatchOrchestrator, args) -> None:
    prices = orchestrator.prices.latest_prices(args.supermarket_id)
    if args.json:
        print(json.dumps(prices, ensure_ascii=False, indent=2))
        return
    if not prices:
        print("Nenhum preço registrado")
        return
    for p in prices:
        label = "atacado" if p["price_type"] == "wholesale" else "varejo"
        min_qty = f" (mín. {p['min_quantity']} un.)" if p["price_type"] == "wholesale" else ""
        print(f"  {p['product_name']:<30} R$ {p['price']:>8.2f}  {label}{min_qty}")
