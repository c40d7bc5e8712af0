from hikbridge.cli import main

main()
