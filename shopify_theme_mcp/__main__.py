from shopify_theme_mcp.cli import main

main()
