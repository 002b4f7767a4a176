from pwmcp.server import main

main()
